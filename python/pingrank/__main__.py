# pingrank/__main__.py
import sys

from pingrank.cli.main import main

sys.exit(main())
