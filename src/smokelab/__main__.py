import sys

from smokelab.main import main

sys.exit(main())
