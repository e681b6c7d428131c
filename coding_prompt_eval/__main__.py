from coding_prompt_eval.cli import main

raise SystemExit(main())
