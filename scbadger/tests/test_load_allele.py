import pytest
import numpy as np
import pandas as pd

import scbadger.simulation
from scbadger.preprocessing import create_allele_anndata, parse_snp_positions

from .constants_test import SEED


@pytest.fixture
def allele_sim():
    sim = scbadger.simulation.simulate_gexp(seed=SEED)
    return scbadger.simulation.simulate_alleles(
        sim['genes'], sim['gexp_sc'].columns, sim['tumor_cells'], sim['cnvs'], seed=SEED)


def test_parse_snp_positions():
    snps = parse_snp_positions(['1:100', 'chrX:5'])

    assert snps['chr'].tolist() == ['1', 'chrX']
    assert snps['pos'].tolist() == [100, 5]
    assert snps.index.tolist() == ['1:100', 'chrX:5']


def test_parse_snp_positions_invalid():
    with pytest.raises(ValueError):
        parse_snp_positions(['rs1', 'rs2'])


def test_create_allele_anndata(allele_sim):
    adata = create_allele_anndata(allele_sim['alt_counts'], allele_sim['total_counts'])

    assert adata.shape[0] == allele_sim['alt_counts'].shape[1]
    assert 0 < adata.shape[1] < allele_sim['alt_counts'].shape[0]
    assert adata.var.index.name == 'snp_id'

    # Homozygous SNPs removed
    assert ((adata.var['af'] > 0.05) & (adata.var['af'] < 0.95)).all()
    assert (adata.var['n_cells_covered'] >= 3).all()

    total = adata.layers['total_counts']
    lesser = adata.layers['lesser_counts']
    alt = np.asarray(adata.X)

    assert (lesser <= total).all()
    assert (2 * lesser.sum(axis=0) <= total.sum(axis=0)).all()

    lesser_is_alt = adata.var['lesser_is_alt'].values
    assert np.array_equal(lesser[:, lesser_is_alt], alt[:, lesser_is_alt])
    assert np.array_equal(lesser[:, ~lesser_is_alt], total[:, ~lesser_is_alt] - alt[:, ~lesser_is_alt])


def test_create_allele_anndata_counts_preserved(allele_sim):
    adata = create_allele_anndata(allele_sim['alt_counts'], allele_sim['total_counts'])

    expected = allele_sim['alt_counts'].loc[adata.var.index].T.values
    assert np.array_equal(np.asarray(adata.X), expected)

    expected = allele_sim['total_counts'].loc[adata.var.index].T.values
    assert np.array_equal(adata.layers['total_counts'], expected)


def test_create_allele_anndata_n_cores(allele_sim):
    adata_serial = create_allele_anndata(
        allele_sim['alt_counts'], allele_sim['total_counts'], n_cores=1, chunk_size=100)
    adata_parallel = create_allele_anndata(
        allele_sim['alt_counts'], allele_sim['total_counts'], n_cores=2, chunk_size=100)

    assert adata_serial.var.index.equals(adata_parallel.var.index)
    assert np.array_equal(adata_serial.layers['lesser_counts'], adata_parallel.layers['lesser_counts'])
    assert np.array_equal(adata_serial.var['af'].values, adata_parallel.var['af'].values)


def test_create_allele_anndata_bulk(allele_sim):
    snp_ids = allele_sim['alt_counts'].index
    n_bulk = pd.Series(100, index=snp_ids)
    r_bulk = pd.Series(30, index=snp_ids)

    adata = create_allele_anndata(
        allele_sim['alt_counts'], allele_sim['total_counts'], n_bulk=n_bulk, r_bulk=r_bulk)

    assert np.allclose(adata.var['af'], 0.3)
    assert adata.var['lesser_is_alt'].all()
    assert adata.uns['allele_params']['bulk']


def test_create_allele_anndata_snp_table(allele_sim):
    adata = create_allele_anndata(
        allele_sim['alt_counts'], allele_sim['total_counts'], snps=allele_sim['snps'], chromosomes=['4'])

    assert set(adata.var['chr']) == {'4'}


def test_create_allele_anndata_invalid(allele_sim):
    with pytest.raises(ValueError):
        create_allele_anndata(allele_sim['alt_counts'] + 1000, allele_sim['total_counts'])

    with pytest.raises(ValueError):
        create_allele_anndata(allele_sim['alt_counts'], allele_sim['total_counts'], min_cell=1000)

    with pytest.raises(ValueError):
        create_allele_anndata(
            allele_sim['alt_counts'], allele_sim['total_counts'],
            n_bulk=pd.Series(100, index=allele_sim['alt_counts'].index))
