#!/usr/bin/env python3
import sys

from qemujuicy.app import main

if __name__ == "__main__":
    sys.exit(main())
