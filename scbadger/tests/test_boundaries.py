import pytest
import numpy as np

import scbadger.tools.boundaries
import scbadger.tools.variance

from scbadger.constants import MAD_FLOOR

from .constants_test import (
    CLUSTER_X, M, SEED, DEL_CHR, NEUTRAL_CHRS, BOUND_TOLERANCE,
    simulated_gexp, simulated_allele, truth_region, overlapping)


def test_traverse_cell_tree():
    groups = scbadger.tools.boundaries.traverse_cell_tree(CLUSTER_X, min_traverse=1)

    assert len(groups) == 3
    assert groups[0][0] == 0
    assert groups[0][1].tolist() == list(range(20))

    children = sorted(tuple(idx) for depth, idx in groups[1:])
    assert children == [tuple(range(10)), tuple(range(10, 20))]


def test_traverse_cell_tree_min_cells():
    groups = scbadger.tools.boundaries.traverse_cell_tree(CLUSTER_X, min_traverse=3, min_cells=11)

    assert len(groups) == 1

    groups = scbadger.tools.boundaries.traverse_cell_tree(CLUSTER_X, min_traverse=2, min_cells=2)
    assert max(depth for depth, idx in groups) == 2
    assert all(len(idx) >= 2 for depth, idx in groups)


def test_traverse_cell_tree_single_cell():
    groups = scbadger.tools.boundaries.traverse_cell_tree(CLUSTER_X[:1])

    assert len(groups) == 1
    assert groups[0][1].tolist() == [0]


def test_calc_gexp_cnv_boundaries():
    sim, adata = simulated_gexp()

    regions = scbadger.tools.boundaries.calc_gexp_cnv_boundaries(adata, m=M, min_traverse=2)

    assert regions is adata.uns['gexp_boundaries']
    assert regions.columns.tolist() == [
        'region_id', 'chr', 'start', 'end', 'cnv_type', 'n_genes', 'genes', 'n_support']

    assert overlapping(regions, truth_region(sim, 'amp')).shape[0] >= 1
    assert overlapping(regions, truth_region(sim, 'del')).shape[0] >= 1
    assert not regions['chr'].isin(NEUTRAL_CHRS).any()

    assert (regions['n_genes'] >= 3).all()
    for region in regions.itertuples():
        assert region.region_id.startswith(f'gexp_{region.chr}_')
        assert len(region.genes.split(',')) == region.n_genes
        assert set(region.genes.split(',')).issubset(set(adata.var.index))

    assert adata.uns['gexp_boundaries_params']['m'] == M


def test_calc_gexp_cnv_boundaries_accumulate():
    sim, adata = simulated_gexp()

    first = scbadger.tools.boundaries.calc_gexp_cnv_boundaries(adata, m=M, min_traverse=2)
    second = scbadger.tools.boundaries.calc_gexp_cnv_boundaries(adata, m=M, min_traverse=2)

    assert second['n_support'].sum() > first['n_support'].sum()

    reset = scbadger.tools.boundaries.calc_gexp_cnv_boundaries(adata, m=M, min_traverse=2, init=True)
    assert reset['n_support'].tolist() == first['n_support'].tolist()


def test_calc_gexp_cnv_boundaries_chrs():
    sim, adata = simulated_gexp()

    regions = scbadger.tools.boundaries.calc_gexp_cnv_boundaries(adata, m=M, min_traverse=2, chrs=['chr' + DEL_CHR])

    assert regions.shape[0] >= 1
    assert (regions['chr'] == DEL_CHR).all()
    assert (regions['cnv_type'] == 'del').all()


def test_robust_sd():
    rs = np.random.RandomState(SEED)
    values = rs.normal(0., 0.1, size=400)
    values[100:300] += 2.

    assert 0.075 < scbadger.tools.boundaries.robust_sd(values) < 0.125

    assert scbadger.tools.boundaries.robust_sd(np.zeros(10)) == MAD_FLOOR
    assert scbadger.tools.boundaries.robust_sd(np.array([1.])) == MAD_FLOOR


def test_calc_gexp_cnv_boundaries_bounds():
    sim, adata = simulated_gexp()

    regions = scbadger.tools.boundaries.calc_gexp_cnv_boundaries(adata, m=M, min_traverse=2, min_cells=10)

    for cnv_type in ('amp', 'del'):
        truth = truth_region(sim, cnv_type)
        called = overlapping(regions, truth)

        assert called.shape[0] == 1
        assert abs(called.iloc[0]['start'] - truth['start']) <= BOUND_TOLERANCE
        assert abs(called.iloc[0]['end'] - truth['end']) <= BOUND_TOLERANCE


def test_calc_gexp_cnv_boundaries_default_m():
    sim, adata = simulated_gexp()

    scbadger.tools.variance.set_gexp_dev(adata)
    regions = scbadger.tools.boundaries.calc_gexp_cnv_boundaries(adata)

    assert adata.uns['gexp_boundaries_params']['m'] == adata.uns['gexp_dev']

    assert not regions['chr'].isin(NEUTRAL_CHRS).any()
    assert overlapping(regions, truth_region(sim, 'amp')).shape[0] >= 1
    assert overlapping(regions, truth_region(sim, 'del')).shape[0] >= 1

    with pytest.raises(ValueError):
        scbadger.tools.boundaries.calc_gexp_cnv_boundaries(adata, m=-1.)


def test_calc_allele_cnv_boundaries():
    sim, adata = simulated_gexp()
    allele_sim, adata_allele = simulated_allele(sim)

    regions = scbadger.tools.boundaries.calc_allele_cnv_boundaries(adata_allele, min_traverse=2)

    assert regions is adata_allele.uns['allele_boundaries']
    assert regions.columns.tolist() == [
        'region_id', 'chr', 'start', 'end', 'cnv_type', 'n_snps', 'snps', 'n_support']

    assert (regions['cnv_type'] == 'loh').all()
    assert overlapping(regions, truth_region(sim, 'del'), cnv_type='loh').shape[0] >= 1
    assert (regions['chr'] == DEL_CHR).all()
    assert (regions['n_snps'] >= 5).all()

    for region in regions.itertuples():
        assert region.region_id.startswith(f'allele_{region.chr}_')

    assert adata_allele.uns['allele_boundaries_params']['pe'] == 0.1


def test_calc_allele_cnv_boundaries_invalid_pe():
    sim, adata = simulated_gexp()
    allele_sim, adata_allele = simulated_allele(sim)

    with pytest.raises(ValueError):
        scbadger.tools.boundaries.calc_allele_cnv_boundaries(adata_allele, pe=0.6)


def test_allelic_imbalance():
    sim, adata = simulated_gexp()
    allele_sim, adata_allele = simulated_allele(sim)

    imbalance = scbadger.tools.boundaries.allelic_imbalance(adata_allele)

    uncovered = adata_allele.layers['total_counts'] == 0
    assert np.isnan(imbalance[uncovered]).all()
    assert (imbalance[~uncovered] <= 0.5).all()
