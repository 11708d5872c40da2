# Put the project root on sys.path so tests import tradekit, tools and tests.fixtures
import sys
import pathlib

ROOT = pathlib.Path(__file__).parent.resolve()
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
