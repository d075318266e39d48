""" Single cell CNV and LOH detection from RNA-seq in Python. """

from . import tools as tl
from . import preprocessing as pp
from . import simulation
from .analysis import CnvAnalysis

__version__ = '0.0.1'

# has to be done at the end, after everything has been imported
import sys

sys.modules.update({f'{__name__}.{m}': globals()[m] for m in ['tl', 'pp']})

del sys
