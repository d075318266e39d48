import pytest
import numpy as np

import scbadger.utils
import scbadger.simulation
from scbadger.preprocessing import create_gexp_anndata

from .constants_test import SEED


@pytest.fixture
def sim():
    return scbadger.simulation.simulate_gexp(seed=SEED)


def test_create_gexp_anndata(sim):
    adata = create_gexp_anndata(sim['gexp_sc'], sim['gexp_ref'], sim['genes'])

    assert adata.shape[0] == sim['gexp_sc'].shape[1]
    assert 0 < adata.shape[1] < sim['gexp_sc'].shape[0]
    assert adata.obs.index.name == 'cell_id'
    assert adata.var.index.name == 'gene'

    for col in ('chr', 'start', 'end', 'mean_sc', 'mean_ref', 'gexp_ref'):
        assert col in adata.var.columns

    assert 'gexp_sc' in adata.layers
    assert adata.uns['gexp_params']['filter']


def test_create_gexp_anndata_sorted(sim):
    shuffled = sim['gexp_sc'].sample(frac=1., random_state=SEED)
    adata = create_gexp_anndata(shuffled, sim['gexp_ref'], sim['genes'])

    assert [chrom for chrom, idx in scbadger.utils.chromosome_blocks(adata.var['chr'])] == ['1', '2', '3', '4', '5']
    for chrom, idx in scbadger.utils.chromosome_blocks(adata.var['chr']):
        assert (np.diff(adata.var['start'].values[idx]) > 0).all()


def test_create_gexp_anndata_unscaled(sim):
    adata = create_gexp_anndata(sim['gexp_sc'], sim['gexp_ref'], sim['genes'], filter=False, scale=False)

    assert adata.shape[1] == sim['gexp_sc'].shape[0]

    expected = (
        sim['gexp_sc'].loc[adata.var.index].T.values -
        sim['gexp_ref'].mean(axis=1).loc[adata.var.index].values[np.newaxis, :])

    assert np.allclose(adata.X, expected)


def test_create_gexp_anndata_scaled(sim):
    adata = create_gexp_anndata(sim['gexp_sc'], sim['gexp_ref'], sim['genes'], filter=False)

    assert np.allclose(adata.layers['gexp_sc'].mean(axis=1), 0.)
    assert np.allclose(adata.var['gexp_ref'].mean(), 0.)


def test_create_gexp_anndata_filter_threshold(sim):
    adata = create_gexp_anndata(
        sim['gexp_sc'], sim['gexp_ref'], sim['genes'],
        min_mean_test=0., min_mean_ref=0., min_mean_both=6.)

    assert (adata.var['mean_sc'] > 6.).all()
    assert (adata.var['mean_ref'] > 6.).all()


def test_create_gexp_anndata_reference_series(sim):
    gexp_ref = sim['gexp_ref'].mean(axis=1)

    adata_series = create_gexp_anndata(sim['gexp_sc'], gexp_ref, sim['genes'])
    adata_frame = create_gexp_anndata(sim['gexp_sc'], sim['gexp_ref'], sim['genes'])

    assert np.allclose(adata_series.X, adata_frame.X)


def test_create_gexp_anndata_chromosomes(sim):
    genes = sim['genes'].assign(chr='chr' + sim['genes']['chr'])

    adata = create_gexp_anndata(sim['gexp_sc'], sim['gexp_ref'], genes, chromosomes=['1', '2'])

    assert set(adata.var['chr']) == {'1', '2'}


def test_create_gexp_anndata_no_shared_genes(sim):
    gexp_ref = sim['gexp_ref'].copy()
    gexp_ref.index = 'other_' + gexp_ref.index

    with pytest.raises(ValueError):
        create_gexp_anndata(sim['gexp_sc'], gexp_ref, sim['genes'])


def test_create_gexp_anndata_no_genes_left(sim):
    with pytest.raises(ValueError):
        create_gexp_anndata(sim['gexp_sc'], sim['gexp_ref'], sim['genes'], min_mean_both=100.)
