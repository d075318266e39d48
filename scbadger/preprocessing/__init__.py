
from .transform import fill_missing, scale_columns
from .load_gexp import create_gexp_anndata
from .load_allele import create_allele_anndata, parse_snp_positions
