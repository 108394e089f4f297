from synthetic_probe.main import main

raise SystemExit(main())
