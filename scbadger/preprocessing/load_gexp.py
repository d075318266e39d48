import logging
import pandas as pd
import numpy as np
import anndata as ad

from anndata import AnnData
from pandas import DataFrame, Series
from typing import Union, Sequence

import scbadger.utils
import scbadger.tools.genes
import scbadger.preprocessing.transform
from scbadger.constants import NO_SHARED_GENES, NO_GENES_LEFT


def _reference_vector(gexp_ref: Union[Series, DataFrame]) -> Series:
    if isinstance(gexp_ref, DataFrame):
        return gexp_ref.mean(axis=1)
    return pd.Series(gexp_ref)


def _mean_nonzero(data) -> float:
    values = np.asarray(data, dtype=float).ravel()
    values = values[values != 0]
    if values.shape[0] == 0:
        return 0.
    return float(np.nanmean(values))


def create_gexp_anndata(
        gexp_sc: DataFrame,
        gexp_ref: Union[Series, DataFrame],
        genes,
        filter: bool=True,
        scale: bool=True,
        min_mean_both: float=0.,
        min_mean_test: float=None,
        min_mean_ref: float=None,
        chromosomes: Sequence[str]=None,
    ) -> AnnData:
    """ Create normalized expression AnnData from single cell and reference expression.

    Parameters
    ----------
    gexp_sc : DataFrame
        single cell expression, genes x cells
    gexp_ref : Series or DataFrame
        reference expression per gene, or genes x samples from which the mean is taken
    genes : DataFrame or PyRanges
        gene coordinates, see `scbadger.tl.genes_table`
    filter : bool, optional
        filter lowly expressed genes, by default True
    scale : bool, optional
        standardize each cell and the reference across genes, by default True
    min_mean_both : float, optional
        minimum mean expression in both single cells and reference, by default 0.
    min_mean_test : float, optional
        minimum mean single cell expression, by default None, the mean of non zero values
    min_mean_ref : float, optional
        minimum reference expression, by default None, the mean of non zero values
    chromosomes : list, optional
        chromosomes to analyze, by default None, autosomes and X

    Returns
    -------
    AnnData
        normalized expression in X, cells x genes, sorted by genomic position

    Examples
    -------

    >>> import scbadger
    >>> sim = scbadger.simulation.simulate_gexp(seed=1)
    >>> adata = scbadger.pp.create_gexp_anndata(sim['gexp_sc'], sim['gexp_ref'], sim['genes'])
    """

    gexp_sc = gexp_sc.copy()
    gexp_sc.index = gexp_sc.index.astype(str)
    gexp_sc.columns = gexp_sc.columns.astype(str)

    gexp_ref = _reference_vector(gexp_ref)
    gexp_ref.index = gexp_ref.index.astype(str)

    gene_coords = scbadger.tools.genes.genes_table(genes)
    gene_coords = scbadger.utils.select_chromosomes(gene_coords, chromosomes)

    shared = gexp_sc.index.intersection(gexp_ref.index).intersection(gene_coords.index)
    if len(shared) == 0:
        raise ValueError(NO_SHARED_GENES)

    logging.info(f'{len(shared)} genes shared between single cell, reference and gene coordinates')

    gexp_sc = gexp_sc.loc[shared]
    gexp_ref = gexp_ref.loc[shared]

    var = gene_coords.loc[shared].copy()
    var['mean_sc'] = gexp_sc.mean(axis=1)
    var['mean_ref'] = gexp_ref

    if filter:
        if min_mean_test is None:
            min_mean_test = _mean_nonzero(gexp_sc.values)
        if min_mean_ref is None:
            min_mean_ref = _mean_nonzero(gexp_ref.values)

        keep = (
            (var['mean_sc'] > min_mean_test) &
            (var['mean_ref'] > min_mean_ref) &
            (var['mean_sc'] > min_mean_both) &
            (var['mean_ref'] > min_mean_both))

        logging.info(f'keeping {keep.sum()} of {keep.shape[0]} genes with '
                     f'min_mean_test={min_mean_test:.3f}, min_mean_ref={min_mean_ref:.3f}, min_mean_both={min_mean_both}')

        var = var[keep]

    if var.shape[0] == 0:
        raise ValueError(NO_GENES_LEFT)

    var = scbadger.utils.sort_genomic(var)

    sc_values = gexp_sc.loc[var.index].values.astype(float)
    ref_values = gexp_ref.loc[var.index].values.astype(float)

    if scale:
        sc_values = scbadger.preprocessing.transform.scale_columns(sc_values)
        ref_values = scbadger.preprocessing.transform.scale_columns(ref_values)

    var['gexp_ref'] = ref_values

    norm_values = sc_values - ref_values[:, np.newaxis]

    obs = pd.DataFrame(index=pd.Index(gexp_sc.columns, name='cell_id'))

    adata = ad.AnnData(
        norm_values.T,
        obs=obs,
        var=var,
        layers={
            'gexp_sc': sc_values.T,
        },
    )

    adata.uns['gexp_params'] = dict(
        filter=filter,
        scale=scale,
        min_mean_both=min_mean_both,
        min_mean_test=min_mean_test,
        min_mean_ref=min_mean_ref,
    )

    return adata
