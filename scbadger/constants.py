import numpy as np

# Default params
DEFAULT_CHROMOSOMES = [str(a) for a in range(1, 23)] + ['X']
DEFAULT_M = 0.15
WINDOW_SIZE = 101
SMOOTH_LAYER = 'gexp_smooth'
LOGGING_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"

DEFAULT_PARAMS = {
    'set_gexp_mats': {
        'filter': True,
        'scale': True,
        'min_mean_both': 0.,
        'min_mean_test': None,
        'min_mean_ref': None,
        'chromosomes': None,
    },
    'set_mv_fit': {
        'num_genes': list(range(5, 101, 5)),
        'rep': 50,
        'seed': 0,
    },
    'set_gexp_dev': {
        'alpha': 0.05,
        'n': 100,
        'window_size': WINDOW_SIZE,
        'seed': 0,
    },
    'calc_gexp_cnv_boundaries': {
        'm': None,
        'chrs': None,
        'min_traverse': 3,
        't': 1e-6,
        'min_num_genes': 3,
        'trim': 0.1,
        'min_cells': 2,
        'window_size': WINDOW_SIZE,
    },
    'set_allele_mats': {
        'filter': True,
        'min_cell': 3,
        'het_deviance_threshold': 0.05,
        'chromosomes': None,
        'n_cores': 1,
    },
    'calc_allele_cnv_boundaries': {
        'min_traverse': 3,
        't': 1e-6,
        'pe': 0.1,
        'burst': 0.5,
        'min_num_snps': 5,
        'min_cells': 2,
    },
    'retest_identified_cnvs': {
        'm': None,
        'pe': 0.1,
        'burst': 0.5,
    },
    'summarize_results': {
        'min_prob': 0.75,
    },
    'cluster_cells': {
        'method': 'ward',
    },
}

GEXP_STATES = ['neutral', 'del', 'amp']
ALLELE_STATES = ['neutral', 'loh']
MAD_FLOOR = 1e-3
EPS = np.finfo(float).eps

# Error messages
NO_MV_FIT = "Variance model not fit, call set_mv_fit first"
NO_GEXP = "Expression matrices not set, call set_gexp_mats first"
NO_ALLELE = "Allele matrices not set, call set_allele_mats first"
NO_GEXP_BOUNDS = "No gene based boundaries, call calc_gexp_cnv_boundaries first"
NO_ALLELE_BOUNDS = "No allele based boundaries, call calc_allele_cnv_boundaries first"
NO_RETEST = "At least one of retest_bound_genes and retest_bound_snps must be set"
NO_SUMMARY = "At least one of gene_based and allele_based must be set"
NO_SHARED_GENES = "No genes shared between single cell, reference and gene coordinates"
NO_GENES_LEFT = "No genes left after filtering"
NO_SNPS_LEFT = "No heterozygous SNPs left after filtering"
ALT_EXCEEDS_TOTAL = "Alternate allele counts exceed total coverage"
