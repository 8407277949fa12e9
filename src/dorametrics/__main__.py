"""Entry-point for ``python -m dorametrics``."""

from dorametrics.main import main

if __name__ == "__main__":
    main()
