"""
Allow running the package directly: python -m multibrot
"""
import sys

from .app import main

sys.exit(main())
