import sys

from bindmetrics.cli import main

sys.exit(main())
