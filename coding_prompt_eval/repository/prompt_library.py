"""
Prompt Library - Named Prompt Texts

Saved prompts are unique by name. Saving an existing name replaces its text
and keeps its id and creation time.

Author: Shubham Singh
Date: October 2026
"""

import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set

from loguru import logger

from coding_prompt_eval.core.constants import IMPROVED_PROMPT_PREFIX
from coding_prompt_eval.core.exceptions import PersistenceUnavailableError
from coding_prompt_eval.core.models import SavedPrompt, WriteResult
from coding_prompt_eval.repository.persistence import PersistenceBackend, mirror_write


class PromptLibrary:
    """
    Upsert-by-name store of prompt texts.

    Example:
        >>> library = PromptLibrary(InMemoryPersistence())
        >>> library.save("Baseline", "You are an expert coder...")
        >>> library.next_improved_name()
        'Improved v1'
    """

    def __init__(self, persistence: PersistenceBackend):
        self._persistence = persistence
        self._prompts: Dict[str, SavedPrompt] = {}
        self._unsynced: Set[str] = set()
        self._pending_deletes: Dict[str, str] = {}

        try:
            records = self._persistence.list_prompts()
        except PersistenceUnavailableError as e:
            logger.warning(f"Starting with empty prompt library, store unavailable | {e}")
            records = []
        for record in records:
            prompt = SavedPrompt.from_dict(record)
            self._prompts[prompt.name] = prompt

    def save(self, name: str, text: str) -> SavedPrompt:
        """
        Create or update a prompt by name.

        Raises:
            ValueError: If the name is blank
        """
        name = name.strip()
        if not name:
            raise ValueError("Prompt name must not be empty")

        existing = self._prompts.get(name)
        if existing is not None:
            existing.text = text
            prompt = existing
            logger.info(f"Prompt updated | Name: {name}")
        else:
            prompt = SavedPrompt(
                id=uuid.uuid4().hex,
                name=name,
                text=text,
                created_at=datetime.now(timezone.utc).isoformat(),
            )
            self._prompts[name] = prompt
            logger.info(f"Prompt saved | Name: {name}")

        self._mirror(prompt)
        return prompt

    def list(self) -> List[SavedPrompt]:
        """Prompts ordered by creation time, oldest first."""
        return sorted(self._prompts.values(), key=lambda p: p.created_at)

    def get_by_name(self, name: str) -> Optional[SavedPrompt]:
        return self._prompts.get(name)

    def delete(self, prompt_id: str) -> WriteResult:
        """Remove a prompt by id. Unknown ids are ignored."""
        for name, prompt in list(self._prompts.items()):
            if prompt.id == prompt_id:
                del self._prompts[name]
                self._unsynced.discard(name)
                logger.info(f"Prompt deleted | Name: {name}")
                return self._mirror_delete(prompt_id, name)
        return WriteResult()

    def next_improved_name(self) -> str:
        """
        Name for the next accepted improvement: "Improved v<n>", where n is
        one more than the number of names already starting with "Improved".
        Deleting prompts can leave gaps; when n lands on a name still in use
        it moves up to the first free number.
        """
        taken = {name for name in self._prompts if name.startswith(IMPROVED_PROMPT_PREFIX)}
        number = len(taken) + 1
        while f"{IMPROVED_PROMPT_PREFIX} v{number}" in taken:
            number += 1
        return f"{IMPROVED_PROMPT_PREFIX} v{number}"

    @property
    def unsynced_names(self) -> List[str]:
        """Names with a save or delete the store has not accepted yet."""
        return sorted(self._unsynced | set(self._pending_deletes.values()))

    def sync(self) -> int:
        """
        Replay pending deletes, then pending saves.

        Returns:
            Number of changes committed by this call
        """
        committed = 0
        for prompt_id, name in list(self._pending_deletes.items()):
            committed += int(self._mirror_delete(prompt_id, name).committed)
        for name in sorted(self._unsynced):
            prompt = self._prompts.get(name)
            if prompt is None:
                self._unsynced.discard(name)
            elif self._mirror(prompt).committed:
                committed += 1
        return committed

    def _mirror(self, prompt: SavedPrompt) -> WriteResult:
        record = prompt.to_dict()
        result = mirror_write(
            f"upsert prompt {prompt.name}", lambda: self._persistence.upsert_prompt(record)
        )
        if result.committed:
            self._unsynced.discard(prompt.name)
        else:
            self._unsynced.add(prompt.name)
        return result

    def _mirror_delete(self, prompt_id: str, name: str) -> WriteResult:
        result = mirror_write(
            f"delete prompt {name}", lambda: self._persistence.delete_prompt(prompt_id)
        )
        if result.committed:
            self._pending_deletes.pop(prompt_id, None)
        else:
            self._pending_deletes[prompt_id] = name
        return result

    def __len__(self) -> int:
        return len(self._prompts)

    def __contains__(self, name: str) -> bool:
        return name in self._prompts
