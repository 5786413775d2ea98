# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""Allow `python -m regionck program.json`."""

from .driver import main

if __name__ == "__main__":
	import sys

	sys.exit(main())
