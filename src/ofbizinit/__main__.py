"""Allow ``python -m ofbizinit``."""

from ofbizinit.cli import main

main()
