import logging
import pandas as pd
import numpy as np
import scipy.cluster.hierarchy as sch

from anndata import AnnData
from pandas import DataFrame

import scbadger.utils
import scbadger.tools.ranges
from scbadger.constants import NO_SUMMARY, NO_GEXP, NO_ALLELE


SUMMARY_COLUMNS = [
    'region_id', 'source', 'chr', 'start', 'end', 'cnv_type',
    'n_genes', 'n_snps', 'mean_prob', 'n_cells', 'frac_cells',
]


def _get_results(adata, key):
    if adata is None or key not in adata.uns:
        raise ValueError(f'no results in {key}, call retest_identified_cnvs first')
    return adata.uns[key]


def _region_posteriors(results, region_id, use_combined=True):
    combined = results.get('combined') if use_combined else None
    if combined is not None and region_id in combined['neutral'].columns:
        return combined
    return results['posteriors']


def _posterior_state(posteriors, cnv_type):
    if cnv_type in posteriors:
        return cnv_type
    if cnv_type == 'loh':
        return 'del'
    raise ValueError(f'no posterior for cnv type {cnv_type}')


def _count_features(adata, region, start_col, end_col):
    if adata is None:
        return np.nan
    mask = scbadger.tools.ranges.in_region(
        adata.var['chr'].values, adata.var[start_col].values, adata.var[end_col].values,
        region.chr, region.start, region.end)
    return int(mask.sum())


def _summarize_source(results, source, adata, adata_allele, min_prob, use_combined):
    rows = []
    for region in results['regions'].itertuples():
        posteriors = _region_posteriors(results, region.region_id, use_combined=use_combined)
        probs = posteriors[_posterior_state(posteriors, region.cnv_type)][region.region_id]
        n_cells = int((probs > min_prob).sum())

        rows.append({
            'region_id': region.region_id,
            'source': source,
            'chr': region.chr,
            'start': region.start,
            'end': region.end,
            'cnv_type': region.cnv_type,
            'n_genes': _count_features(adata, region, 'start', 'end'),
            'n_snps': _count_features(adata_allele, region, 'pos', 'pos'),
            'mean_prob': float(probs.mean()),
            'n_cells': n_cells,
            'frac_cells': n_cells / probs.shape[0] if probs.shape[0] > 0 else np.nan,
        })

    return rows


def summarize_results(
        adata: AnnData=None,
        adata_allele: AnnData=None,
        gene_based: bool=True,
        allele_based: bool=False,
        min_prob: float=0.75,
        use_combined: bool=True,
    ) -> DataFrame:
    """ Summarize retested regions across cells.

    Parameters
    ----------
    adata : AnnData, optional
        normalized expression data with retested regions, by default None
    adata_allele : AnnData, optional
        allele count data with retested regions, by default None
    gene_based : bool, optional
        summarize regions identified from expression, by default True
    allele_based : bool, optional
        summarize regions identified from allele counts, by default False
    min_prob : float, optional
        posterior threshold for counting a cell as altered, by default 0.75
    use_combined : bool, optional
        use posteriors combining expression and allele evidence where available, by default True

    Returns
    -------
    DataFrame
        one row per region with the mean posterior of the region's CNV type
        and the number and fraction of cells with posterior above `min_prob`
    """
    if not (gene_based or allele_based):
        raise ValueError(NO_SUMMARY)

    rows = []

    if gene_based:
        if adata is None:
            raise ValueError(NO_GEXP)
        results = _get_results(adata, 'gexp_results')
        rows.extend(_summarize_source(results, 'gexp', adata, adata_allele, min_prob, use_combined))

    if allele_based:
        if adata_allele is None:
            raise ValueError(NO_ALLELE)
        results = _get_results(adata_allele, 'allele_results')
        rows.extend(_summarize_source(results, 'allele', adata, adata_allele, min_prob, use_combined))

    summary = pd.DataFrame(rows, columns=SUMMARY_COLUMNS)

    if summary.shape[0] > 0:
        summary = scbadger.utils.sort_genomic(summary).reset_index(drop=True)

    logging.info(f'summarized {summary.shape[0]} regions')

    return summary


def _signed_posteriors(posteriors):
    if 'amp' in posteriors:
        return posteriors['amp'] - posteriors['del']
    return posteriors['loh']


def posterior_matrix(results, use_combined=True) -> DataFrame:
    """ Signed cells x regions matrix of posteriors.

    Expression results give P(amp) - P(del), allele only results give P(loh).
    Combined posteriors replace the columns of the regions they cover.
    """
    data = _signed_posteriors(results['posteriors'])

    if use_combined and 'combined' in results:
        combined = _signed_posteriors(results['combined'])
        data = data.drop(columns=combined.columns).join(combined, how='outer')[data.columns]

    return data.fillna(0.)


def cluster_cells(
        adata: AnnData,
        key: str='gexp_results',
        method: str='ward',
        n_clusters: int=None,
        use_combined: bool=True,
    ) -> np.ndarray:
    """ Hierarchically cluster cells on their per region posteriors.

    Parameters
    ----------
    adata : AnnData
        data with retested regions
    key : str, optional
        uns key of the results, 'gexp_results' or 'allele_results', by default 'gexp_results'
    method : str, optional
        scipy linkage method, by default 'ward'
    n_clusters : int, optional
        cut the tree into at most this many clusters stored in obs['cnv_cluster'], by default None
    use_combined : bool, optional
        use posteriors combining expression and allele evidence where available, by default True

    Returns
    -------
    ndarray
        scipy linkage matrix, also stored in `uns['cnv_tree']` with the cell
        order added as obs['cell_order']
    """
    results = _get_results(adata, key)
    data = posterior_matrix(results, use_combined=use_combined).reindex(adata.obs.index).fillna(0.)

    if data.shape[1] == 0:
        raise ValueError('no regions to cluster cells on')

    if data.shape[0] < 2:
        raise ValueError('at least two cells required for clustering')

    linkage = sch.linkage(data.values, method=method, metric='euclidean')
    dendrogram = sch.dendrogram(linkage, color_threshold=-1, no_plot=True)
    idx = np.array(dendrogram['leaves'])

    ordering = np.zeros(idx.shape[0], dtype=int)
    ordering[idx] = np.arange(idx.shape[0])

    adata.obs['cell_order'] = ordering

    if n_clusters is not None:
        clusters = sch.fcluster(linkage, n_clusters, criterion='maxclust')
        adata.obs['cnv_cluster'] = pd.Series(clusters, index=adata.obs.index).astype(str).astype('category')

    adata.uns['cnv_tree'] = dict(
        linkage=linkage,
        cell_ids=np.array(adata.obs.index),
        region_ids=np.array(data.columns),
        method=method,
    )

    return linkage
