import sys

from testrail_reporter.cli import main

sys.exit(main())
