from relpipe.cli import main

raise SystemExit(main())
