import sys

from imbalance_eval.cli import main

sys.exit(main())
