from impact.main import main

raise SystemExit(main())
