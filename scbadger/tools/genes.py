import logging
import pyranges as pr
import pandas as pd
import numpy as np

from anndata import AnnData
from pandas import DataFrame
from pyranges import PyRanges

import scbadger.utils


def read_ensemble_genes_gtf(gtf_filename) -> PyRanges:
    """ Read an ensembl gtf and extract gene start end

    Parameters
    ----------
    gtf_filename : str
        GTF filename

    Returns
    -------
    PyRanges
        Genes bounds
    """
    genes = pr.read_gtf(gtf_filename, as_df=True)
    genes = genes.groupby(['Chromosome', 'gene_id', 'gene_name'], observed=True).agg({'Start': 'min', 'End': 'max'}).reset_index()
    genes = pr.PyRanges(genes)
    return genes


def genes_table(genes) -> DataFrame:
    """ Convert gene coordinates to a table indexed by gene name

    Parameters
    ----------
    genes : DataFrame or PyRanges
        either a table indexed by gene name with columns 'chr', 'start', 'end',
        a table with an additional 'gene_name' column, or a PyRanges with a
        'gene_name' column as returned by `read_ensemble_genes_gtf`

    Returns
    -------
    DataFrame
        gene coordinates with columns 'chr', 'start', 'end' indexed by gene name
    """
    if isinstance(genes, PyRanges):
        genes = genes.as_df().rename(columns={
            'Chromosome': 'chr',
            'Start': 'start',
            'End': 'end',
        })

    genes = genes.copy()

    if 'gene_name' in genes.columns:
        genes = genes.set_index('gene_name')

    for col in ('chr', 'start', 'end'):
        if col not in genes.columns:
            raise ValueError(f'gene coordinates missing column {col}')

    genes = genes[['chr', 'start', 'end']].dropna()
    genes.index = genes.index.astype(str)
    genes = genes[~genes.index.duplicated(keep='first')]
    genes['chr'] = scbadger.utils.normalize_chromosomes(genes['chr'])
    genes['start'] = genes['start'].astype(int)
    genes['end'] = genes['end'].astype(int)
    genes.index.name = 'gene'

    return genes


def set_gene_factors(adata: AnnData, genes) -> AnnData:
    """ Map SNPs to the genes they overlap

    Parameters
    ----------
    adata : AnnData
        allele count data with var columns 'chr' and 'pos'
    genes : DataFrame or PyRanges
        gene coordinates, see `genes_table`

    Returns
    -------
    AnnData
        allele data with `gene` column added to var, nan for intergenic SNPs
    """
    genes = genes_table(genes)

    snp_ranges = pr.PyRanges(pd.DataFrame({
        'Chromosome': adata.var['chr'].astype(str).values,
        'Start': adata.var['pos'].astype(int).values,
        'End': adata.var['pos'].astype(int).values + 1,
        'snp': adata.var.index.values,
    }))

    gene_ranges = pr.PyRanges(pd.DataFrame({
        'Chromosome': genes['chr'].values,
        'Start': genes['start'].values,
        'End': genes['end'].values + 1,
        'gene': genes.index.values,
    }))

    joined = snp_ranges.join(gene_ranges)

    if len(joined) == 0:
        logging.warning('no SNPs overlap any gene')
        snp_genes = pd.Series(dtype=object)

    else:
        joined = joined.as_df()
        joined = joined.sort_values(['snp', 'Start_b'])
        snp_genes = joined.drop_duplicates('snp').set_index('snp')['gene']

    adata.var['gene'] = snp_genes.reindex(adata.var.index).values

    n_mapped = adata.var['gene'].notnull().sum()
    logging.info(f'mapped {n_mapped} of {adata.shape[1]} SNPs to genes')

    return adata


def snps_in_genes(adata: AnnData, gene_names) -> np.ndarray:
    """ Boolean mask of SNPs mapped to any of the given genes
    """
    if 'gene' not in adata.var.columns:
        raise ValueError('SNPs not mapped to genes, call set_gene_factors first')

    return adata.var['gene'].isin(set(gene_names)).values
