# Ensure tests import the service package from this checkout first,
# also when it was not installed with `pip install -e .`.
import os
import sys

SERVICE_ROOT = os.path.dirname(__file__)

if SERVICE_ROOT not in sys.path:
    sys.path.insert(0, SERVICE_ROOT)
