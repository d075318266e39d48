import logging
import pandas as pd
import numpy as np
import anndata as ad

from anndata import AnnData
from concurrent.futures import ProcessPoolExecutor
from pandas import DataFrame, Series
from typing import Sequence

import scbadger.utils
from scbadger.constants import NO_SNPS_LEFT, ALT_EXCEEDS_TOTAL


def parse_snp_positions(snp_ids: Sequence[str]) -> DataFrame:
    """ Parse `chr:pos` SNP identifiers into a position table

    Parameters
    ----------
    snp_ids : list of str
        SNP identifiers of the form `chr:pos`

    Returns
    -------
    DataFrame
        table with columns 'chr' and 'pos' indexed by SNP identifier
    """
    snp_ids = pd.Index(snp_ids).astype(str)
    parts = snp_ids.str.rsplit(':', n=1, expand=True).to_frame(index=False)

    if parts.shape[1] != 2 or parts.isnull().any().any():
        raise ValueError('SNP ids must be of the form chr:pos when no SNP table is given')

    snps = pd.DataFrame({
        'chr': parts.iloc[:, 0].values,
        'pos': parts.iloc[:, 1].astype(int).values,
    }, index=snp_ids)

    return snps


def _allele_chunk_stats(alt, total, af_bulk=None):
    """ Per SNP coverage, pooled allele fraction and lesser allele counts for a chunk of SNPs.
    """
    covered = (total > 0).sum(axis=1)

    with np.errstate(invalid='ignore', divide='ignore'):
        af = alt.sum(axis=1) / total.sum(axis=1)

    if af_bulk is not None:
        af = af_bulk

    lesser_is_alt = ~(af > 0.5)
    lesser = np.where(lesser_is_alt[:, np.newaxis], alt, total - alt)

    return covered, af, lesser_is_alt, lesser


def _chunked_stats(alt, total, af_bulk, n_cores, chunk_size):
    starts = list(range(0, alt.shape[0], chunk_size))

    chunks = [
        (alt[a:a + chunk_size], total[a:a + chunk_size], None if af_bulk is None else af_bulk[a:a + chunk_size])
        for a in starts]

    if n_cores is None or n_cores <= 1 or len(chunks) <= 1:
        results = [_allele_chunk_stats(*chunk) for chunk in chunks]

    else:
        logging.info(f'computing allele statistics for {len(chunks)} chunks on {n_cores} cores')
        with ProcessPoolExecutor(max_workers=n_cores) as executor:
            results = list(executor.map(_allele_chunk_stats, *zip(*chunks)))

    covered = np.concatenate([r[0] for r in results])
    af = np.concatenate([r[1] for r in results])
    lesser_is_alt = np.concatenate([r[2] for r in results])
    lesser = np.concatenate([r[3] for r in results], axis=0)

    return covered, af, lesser_is_alt, lesser


def create_allele_anndata(
        alt_counts: DataFrame,
        total_counts: DataFrame,
        snps: DataFrame=None,
        n_bulk: Series=None,
        r_bulk: Series=None,
        filter: bool=True,
        min_cell: int=3,
        het_deviance_threshold: float=0.05,
        chromosomes: Sequence[str]=None,
        n_cores: int=1,
        chunk_size: int=5000,
    ) -> AnnData:
    """ Create allele count AnnData restricted to putative heterozygous SNPs.

    Parameters
    ----------
    alt_counts : DataFrame
        alternate allele read counts, SNPs x cells
    total_counts : DataFrame
        total read coverage, SNPs x cells
    snps : DataFrame, optional
        SNP positions with columns 'chr' and 'pos' indexed by SNP id, by default None,
        parse positions from `chr:pos` SNP ids
    n_bulk : Series, optional
        bulk total coverage per SNP, by default None
    r_bulk : Series, optional
        bulk alternate allele counts per SNP, by default None
    filter : bool, optional
        remove SNPs covered in fewer than `min_cell` cells, by default True
    min_cell : int, optional
        minimum number of covered cells, by default 3
    het_deviance_threshold : float, optional
        SNPs with allele fraction within this distance of 0 or 1 are
        considered homozygous and removed, by default 0.05
    chromosomes : list, optional
        chromosomes to analyze, by default None, autosomes and X
    n_cores : int, optional
        number of processes for computing per SNP statistics, by default 1
    chunk_size : int, optional
        number of SNPs per chunk, by default 5000

    Returns
    -------
    AnnData
        cells x SNPs alt counts in X, with layers 'total_counts' and 'lesser_counts'
    """

    alt_counts = alt_counts.copy()
    total_counts = total_counts.reindex(index=alt_counts.index, columns=alt_counts.columns)

    if total_counts.isnull().any().any():
        raise ValueError('alt_counts and total_counts must have the same SNPs and cells')

    alt_counts.index = alt_counts.index.astype(str)
    total_counts.index = alt_counts.index
    alt_counts.columns = alt_counts.columns.astype(str)
    total_counts.columns = alt_counts.columns

    if (alt_counts.values > total_counts.values).any():
        raise ValueError(ALT_EXCEEDS_TOTAL)

    if snps is None:
        snps = parse_snp_positions(alt_counts.index)
    else:
        snps = snps.copy()
        snps.index = snps.index.astype(str)
        snps = snps.reindex(alt_counts.index)
        if snps[['chr', 'pos']].isnull().any().any():
            raise ValueError('missing positions for some SNPs')

    snps = scbadger.utils.select_chromosomes(snps[['chr', 'pos']], chromosomes)
    snps['pos'] = snps['pos'].astype(int)

    alt = alt_counts.loc[snps.index].values.astype(int)
    total = total_counts.loc[snps.index].values.astype(int)

    af_bulk = None
    if n_bulk is not None or r_bulk is not None:
        if n_bulk is None or r_bulk is None:
            raise ValueError('n_bulk and r_bulk must be given together')
        with np.errstate(invalid='ignore', divide='ignore'):
            af_bulk = (
                pd.Series(r_bulk).reindex(snps.index).values.astype(float) /
                pd.Series(n_bulk).reindex(snps.index).values.astype(float))

    covered, af, lesser_is_alt, lesser = _chunked_stats(alt, total, af_bulk, n_cores, chunk_size)

    snps['n_cells_covered'] = covered
    snps['af'] = af
    snps['lesser_is_alt'] = lesser_is_alt

    keep = (af > het_deviance_threshold) & (af < 1. - het_deviance_threshold)
    logging.info(f'{keep.sum()} of {keep.shape[0]} SNPs putatively heterozygous')

    if filter:
        keep &= (covered >= min_cell)
        logging.info(f'{keep.sum()} SNPs covered in at least {min_cell} cells')

    if keep.sum() == 0:
        raise ValueError(NO_SNPS_LEFT)

    snps = snps[keep]
    alt = alt[keep]
    total = total[keep]
    lesser = lesser[keep]

    kept_ids = snps.index
    snps = scbadger.utils.sort_genomic(snps, pos_col='pos')
    order = kept_ids.get_indexer(snps.index)
    alt = alt[order]
    total = total[order]
    lesser = lesser[order]

    snps.index.name = 'snp_id'
    obs = pd.DataFrame(index=pd.Index(alt_counts.columns, name='cell_id'))

    adata = ad.AnnData(
        alt.T.astype(float),
        obs=obs,
        var=snps,
        layers={
            'total_counts': total.T.astype(float),
            'lesser_counts': lesser.T.astype(float),
        },
    )

    adata.uns['allele_params'] = dict(
        filter=filter,
        min_cell=min_cell,
        het_deviance_threshold=het_deviance_threshold,
        bulk=af_bulk is not None,
    )

    return adata
