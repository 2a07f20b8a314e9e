import sys

from macd.cli import main

sys.exit(main())
