import pytest
import numpy as np
import pandas as pd
import pyranges as pr
import anndata as ad

import scbadger.tools.genes

from .constants_test import GENES


def _snp_adata():
    var = pd.DataFrame({
        'chr': ['1', '1', '1', '2', '3'],
        'pos': [150, 200, 250, 350, 10],
    }, index=['1:150', '1:200', '1:250', '2:350', '3:10'])
    return ad.AnnData(np.zeros((2, 5)), var=var)


def test_genes_table():
    genes = scbadger.tools.genes.genes_table(GENES)

    assert genes.index.tolist() == ['A', 'B', 'C']
    assert genes.index.name == 'gene'
    assert genes['chr'].tolist() == ['1', '1', '2']
    assert genes.columns.tolist() == ['chr', 'start', 'end']


def test_genes_table_pyranges():
    ranges = pr.PyRanges(pd.DataFrame({
        'Chromosome': ['1', '2'],
        'Start': [100, 300],
        'End': [200, 400],
        'gene_name': ['A', 'C'],
    }))

    genes = scbadger.tools.genes.genes_table(ranges)

    assert set(genes.index) == {'A', 'C'}
    assert genes.loc['C', 'start'] == 300
    assert genes.loc['C', 'end'] == 400


def test_genes_table_missing_column():
    with pytest.raises(ValueError):
        scbadger.tools.genes.genes_table(GENES.drop('end', axis=1))


def test_set_gene_factors():
    adata = _snp_adata()

    scbadger.tools.genes.set_gene_factors(adata, GENES)

    genes = adata.var['gene']
    assert genes['1:150'] == 'A'
    assert genes['1:200'] == 'A'
    assert pd.isnull(genes['1:250'])
    assert genes['2:350'] == 'C'
    assert pd.isnull(genes['3:10'])


def test_set_gene_factors_no_overlap():
    adata = _snp_adata()
    genes = GENES.assign(chr='5')

    scbadger.tools.genes.set_gene_factors(adata, genes)

    assert adata.var['gene'].isnull().all()


def test_snps_in_genes():
    adata = _snp_adata()

    with pytest.raises(ValueError):
        scbadger.tools.genes.snps_in_genes(adata, ['A'])

    scbadger.tools.genes.set_gene_factors(adata, GENES)
    mask = scbadger.tools.genes.snps_in_genes(adata, ['A', 'C'])

    assert mask.tolist() == [True, True, False, True, False]


def test_read_ensemble_genes_gtf(tmp_path):
    filename = tmp_path / 'genes.gtf'
    lines = [
        ['1', 'ensembl', 'exon', '100', '200', '.', '+', '.', 'gene_id "G1"; gene_name "A";'],
        ['1', 'ensembl', 'exon', '300', '400', '.', '+', '.', 'gene_id "G1"; gene_name "A";'],
        ['2', 'ensembl', 'exon', '50', '80', '.', '-', '.', 'gene_id "G2"; gene_name "C";'],
    ]
    filename.write_text(''.join('\t'.join(line) + '\n' for line in lines))

    genes = scbadger.tools.genes.read_ensemble_genes_gtf(str(filename))
    genes = scbadger.tools.genes.genes_table(genes)

    assert set(genes.index) == {'A', 'C'}
    assert genes.loc['A', 'start'] < 100
    assert genes.loc['A', 'end'] == 400
    assert genes.loc['C', 'chr'] == '2'
