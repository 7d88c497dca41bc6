import sys

from pydev.main import main

sys.exit(main())
