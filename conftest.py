# Ensure tests import modules from this service directory first.
# This makes `import app.server` and `from app import ...` behave consistently
# regardless of where pytest is started from.
import os
import sys

SERVICE_ROOT = os.path.dirname(__file__)

if SERVICE_ROOT not in sys.path:
    sys.path.insert(0, SERVICE_ROOT)
