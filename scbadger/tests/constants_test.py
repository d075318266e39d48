import numpy as np
import pandas as pd

import scbadger.preprocessing
import scbadger.simulation

SEED = 1
M = 0.5

AMP_CHR = '2'
DEL_CHR = '4'
NEUTRAL_CHRS = ['1', '3', '5']

# Simulated genes are 10kb apart
BOUND_TOLERANCE = 150000

# Two clear clusters of 10 cells
CLUSTER_X = np.concatenate([
    np.zeros((10, 5)) + np.arange(10)[:, np.newaxis] * 0.01,
    np.ones((10, 5)) * 5 + np.arange(10)[:, np.newaxis] * 0.01,
])

GENES = pd.DataFrame({
    'gene_name': ['A', 'B', 'C'],
    'chr': ['chr1', '1', '2'],
    'start': [100, 1000, 300],
    'end': [200, 2000, 400],
})


def simulated_gexp(seed=SEED):
    sim = scbadger.simulation.simulate_gexp(seed=seed)
    adata = scbadger.preprocessing.create_gexp_anndata(sim['gexp_sc'], sim['gexp_ref'], sim['genes'])
    return sim, adata


def simulated_allele(sim, seed=SEED):
    allele_sim = scbadger.simulation.simulate_alleles(
        sim['genes'], sim['gexp_sc'].columns, sim['tumor_cells'], sim['cnvs'], seed=seed)
    adata_allele = scbadger.preprocessing.create_allele_anndata(
        allele_sim['alt_counts'], allele_sim['total_counts'])
    return allele_sim, adata_allele


def truth_region(sim, cnv_type):
    return sim['cnvs'][sim['cnvs']['cnv_type'] == cnv_type].iloc[0]


def overlapping(regions, truth, cnv_type=None):
    if cnv_type is None:
        cnv_type = truth['cnv_type']
    return regions[
        (regions['chr'] == truth['chr']) &
        (regions['cnv_type'] == cnv_type) &
        (regions['start'] <= truth['end']) &
        (regions['end'] >= truth['start'])]
