#Code by Christopher Kaelin, 2025
# This code is licensed under the MIT License - see the LICENSE file for details.
import sys

from .cli import main

sys.exit(main())
