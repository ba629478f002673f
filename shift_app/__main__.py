"""Allow ``python -m shift_app``."""

from .cli import main

if __name__ == "__main__":
    main()
