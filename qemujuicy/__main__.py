import sys

from qemujuicy.app import main

sys.exit(main())
