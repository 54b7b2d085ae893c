"""Allow ``python -m worstgen``."""

from .main import main

if __name__ == "__main__":
    main()
