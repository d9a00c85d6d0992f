import sys

from statmon.app import main

sys.exit(main())
