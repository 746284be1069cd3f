from buildsweep.cli import main

raise SystemExit(main())
