import logging
import pandas as pd
import numpy as np
import scipy.special
import scipy.stats

from anndata import AnnData
from pandas import DataFrame
from typing import Dict

import scbadger.hmm
import scbadger.tools.genes
import scbadger.tools.ranges
import scbadger.tools.variance
from scbadger.constants import (
    DEFAULT_M, GEXP_STATES, ALLELE_STATES, NO_GEXP, NO_ALLELE, NO_MV_FIT,
    NO_GEXP_BOUNDS, NO_ALLELE_BOUNDS, NO_RETEST)


def _default_m(adata: AnnData, m: float=None) -> float:
    if m is not None:
        return m
    if 'gexp_boundaries_params' in adata.uns:
        return adata.uns['gexp_boundaries_params']['m']
    return adata.uns.get('gexp_dev', DEFAULT_M)


def _normalize(log_like: np.ndarray, log_prior: np.ndarray) -> np.ndarray:
    log_post = log_like + log_prior[np.newaxis, :]
    log_post = log_post - scipy.special.logsumexp(log_post, axis=1)[:, np.newaxis]
    return np.exp(log_post)


def _to_frames(post: list, states, cell_ids, region_ids) -> Dict[str, DataFrame]:
    frames = {}
    for k, state in enumerate(states):
        values = np.array([p[:, k] for p in post]).T if len(post) > 0 else np.zeros((len(cell_ids), 0))
        frames[state] = pd.DataFrame(values, index=cell_ids, columns=pd.Index(region_ids, name='region_id'))
    return frames


def gexp_region_mask(adata: AnnData, region) -> np.ndarray:
    """ Genes falling within a region.
    """
    return scbadger.tools.ranges.in_region(
        adata.var['chr'].values, adata.var['start'].values, adata.var['end'].values,
        region.chr, region.start, region.end)


def allele_region_mask(adata_allele: AnnData, region, genes=None) -> np.ndarray:
    """ SNPs falling within a region.

    When genes are given and SNPs have been mapped to genes, SNPs mapped to
    those genes are selected instead.
    """
    if genes is not None and 'gene' in adata_allele.var.columns:
        return scbadger.tools.genes.snps_in_genes(adata_allele, genes)

    return scbadger.tools.ranges.in_region(
        adata_allele.var['chr'].values, adata_allele.var['pos'].values, adata_allele.var['pos'].values,
        region.chr, region.start, region.end)


def gexp_log_likelihood(adata: AnnData, gene_mask: np.ndarray, m: float) -> np.ndarray:
    """ Log likelihood of mean region expression per cell under neutral, deleted and amplified states.

    Returns
    -------
    ndarray
        cells x states in the order of GEXP_STATES
    """
    k = int(gene_mask.sum())
    if k == 0:
        return np.zeros((adata.shape[0], len(GEXP_STATES)))

    X = np.array(adata.X[:, gene_mask], dtype=float)
    xbar = X.mean(axis=1)
    sd = np.sqrt(scbadger.tools.variance.predict_mv(adata, k).values)

    means = np.array([0., -m, m])

    return scipy.stats.norm.logpdf(xbar[:, np.newaxis], means[np.newaxis, :], sd[:, np.newaxis])


def allele_log_likelihood(adata_allele: AnnData, snp_mask: np.ndarray, pe: float, burst: float) -> np.ndarray:
    """ Log likelihood of region lesser allele counts per cell under neutral and LOH states.

    Neutral counts follow a beta binomial with both shape parameters equal to
    `burst`, modelling monoallelic transcriptional bursting.  LOH counts follow
    an equal mixture of binomials with probabilities `pe` and `1 - pe`.

    Returns
    -------
    ndarray
        cells x states in the order of ALLELE_STATES
    """
    if snp_mask.sum() == 0:
        return np.zeros((adata_allele.shape[0], len(ALLELE_STATES)))

    lesser = np.array(adata_allele.layers['lesser_counts'][:, snp_mask], dtype=float)
    total = np.array(adata_allele.layers['total_counts'][:, snp_mask], dtype=float)

    ll_neutral = scipy.stats.betabinom.logpmf(lesser, total, burst, burst).sum(axis=1)
    ll_loh = scbadger.hmm.binomial_mixture_logpmf(lesser, total, [pe, 1. - pe]).sum(axis=1)

    return np.column_stack([ll_neutral, ll_loh])


def calc_gexp_cnv_prob(
        adata: AnnData,
        regions: DataFrame,
        m: float=None,
        prior=None,
    ) -> Dict[str, DataFrame]:
    """ Posterior probability of amplification and deletion per cell and region from expression.

    Parameters
    ----------
    adata : AnnData
        normalized expression data with variance model fit
    regions : DataFrame
        regions to test with columns 'region_id', 'chr', 'start', 'end'
    m : float, optional
        expected expression shift, by default None, the shift used for boundary detection
    prior : list, optional
        prior probabilities of neutral, deleted and amplified states, by default uniform

    Returns
    -------
    dict
        DataFrame of cells x regions keyed by state
    """
    if 'mv_fit' not in adata.uns:
        raise ValueError(NO_MV_FIT)

    m = _default_m(adata, m)
    log_prior = np.log(_check_prior(prior, len(GEXP_STATES)))

    post = []
    for region in regions.itertuples():
        ll = gexp_log_likelihood(adata, gexp_region_mask(adata, region), m)
        post.append(_normalize(ll, log_prior))

    return _to_frames(post, GEXP_STATES, adata.obs.index, regions['region_id'].values)


def calc_allele_cnv_prob(
        adata_allele: AnnData,
        regions: DataFrame,
        pe: float=0.1,
        burst: float=0.5,
        prior: float=0.5,
    ) -> Dict[str, DataFrame]:
    """ Posterior probability of LOH per cell and region from allele counts.

    Parameters
    ----------
    adata_allele : AnnData
        allele count data
    regions : DataFrame
        regions to test with columns 'region_id', 'chr', 'start', 'end'
    pe : float, optional
        probability of observing the lost allele, by default 0.1
    burst : float, optional
        beta binomial shape for balanced regions, by default 0.5
    prior : float, optional
        prior probability of LOH, by default 0.5

    Returns
    -------
    dict
        DataFrame of cells x regions keyed by state
    """
    log_prior = np.log(np.array([1. - prior, prior]))

    post = []
    for region in regions.itertuples():
        ll = allele_log_likelihood(adata_allele, allele_region_mask(adata_allele, region), pe, burst)
        post.append(_normalize(ll, log_prior))

    return _to_frames(post, ALLELE_STATES, adata_allele.obs.index, regions['region_id'].values)


def calc_combined_cnv_prob(
        adata: AnnData,
        adata_allele: AnnData,
        regions: DataFrame,
        m: float=None,
        pe: float=0.1,
        burst: float=0.5,
        prior=None,
    ) -> Dict[str, DataFrame]:
    """ Posterior probability of amplification and deletion combining expression and allele counts.

    Deletions are expected to show LOH, amplifications and neutral regions are
    expected to show balanced allele counts.  Cells absent from the allele data
    contribute expression evidence only.

    Parameters
    ----------
    adata : AnnData
        normalized expression data with variance model fit
    adata_allele : AnnData
        allele count data
    regions : DataFrame
        regions to test with columns 'region_id', 'chr', 'start', 'end'
    m : float, optional
        expected expression shift, by default None, the shift used for boundary detection
    pe : float, optional
        probability of observing the lost allele, by default 0.1
    burst : float, optional
        beta binomial shape for balanced regions, by default 0.5
    prior : list, optional
        prior probabilities of neutral, deleted and amplified states, by default uniform

    Returns
    -------
    dict
        DataFrame of cells x regions keyed by state
    """
    if 'mv_fit' not in adata.uns:
        raise ValueError(NO_MV_FIT)

    m = _default_m(adata, m)
    log_prior = np.log(_check_prior(prior, len(GEXP_STATES)))

    allele_cells = adata_allele.obs.index.get_indexer(adata.obs.index)
    has_allele = allele_cells >= 0

    post = []
    for region in regions.itertuples():
        gene_mask = gexp_region_mask(adata, region)
        genes = adata.var.index[gene_mask] if getattr(region, 'source', 'gexp') == 'gexp' else None
        snp_mask = allele_region_mask(adata_allele, region, genes=genes)

        ll_gexp = gexp_log_likelihood(adata, gene_mask, m)

        ll_allele = np.zeros((adata.shape[0], len(ALLELE_STATES)))
        ll_allele[has_allele] = allele_log_likelihood(adata_allele, snp_mask, pe, burst)[allele_cells[has_allele]]

        neutral, loh = ll_allele[:, 0], ll_allele[:, 1]
        ll = ll_gexp + np.column_stack([neutral, loh, neutral])

        post.append(_normalize(ll, log_prior))

    return _to_frames(post, GEXP_STATES, adata.obs.index, regions['region_id'].values)


def _check_prior(prior, n_states):
    if prior is None:
        return np.full(n_states, 1. / n_states)

    prior = np.asarray(prior, dtype=float)
    if prior.shape != (n_states,) or (prior <= 0).any():
        raise ValueError(f'prior must be {n_states} positive probabilities')

    return prior / prior.sum()


def retest_identified_cnvs(
        adata: AnnData=None,
        adata_allele: AnnData=None,
        retest_bound_genes: bool=True,
        retest_bound_snps: bool=False,
        m: float=None,
        pe: float=0.1,
        burst: float=0.5,
    ) -> Dict[str, Dict]:
    """ Retest identified regions to obtain per cell posterior probabilities.

    Parameters
    ----------
    adata : AnnData, optional
        normalized expression data with variance model fit, by default None
    adata_allele : AnnData, optional
        allele count data, by default None
    retest_bound_genes : bool, optional
        retest regions identified from expression, by default True
    retest_bound_snps : bool, optional
        retest regions identified from allele counts, by default False
    m : float, optional
        expected expression shift, by default None
    pe : float, optional
        probability of observing the lost allele, by default 0.1
    burst : float, optional
        beta binomial shape for balanced regions, by default 0.5

    Returns
    -------
    dict
        results keyed by 'gexp' and/or 'allele', each a dict with 'regions',
        'posteriors' and, when both data types are available, 'combined'.
        Combined posteriors of allele based results only cover regions
        containing genes, other regions keep their allele posteriors.
        Also stored in `adata.uns['gexp_results']` and `adata_allele.uns['allele_results']`.
    """
    if not (retest_bound_genes or retest_bound_snps):
        raise ValueError(NO_RETEST)

    results = {}

    if retest_bound_genes:
        if adata is None:
            raise ValueError(NO_GEXP)
        if 'gexp_boundaries' not in adata.uns:
            raise ValueError(NO_GEXP_BOUNDS)

        regions = adata.uns['gexp_boundaries'].assign(source='gexp')
        if regions.shape[0] == 0:
            raise ValueError(NO_GEXP_BOUNDS)

        logging.info(f'retesting {regions.shape[0]} gene based regions')

        gexp_results = {
            'regions': regions,
            'posteriors': calc_gexp_cnv_prob(adata, regions, m=m),
        }

        if adata_allele is not None:
            gexp_results['combined'] = calc_combined_cnv_prob(
                adata, adata_allele, regions, m=m, pe=pe, burst=burst)

        adata.uns['gexp_results'] = gexp_results
        results['gexp'] = gexp_results

    if retest_bound_snps:
        if adata_allele is None:
            raise ValueError(NO_ALLELE)
        if 'allele_boundaries' not in adata_allele.uns:
            raise ValueError(NO_ALLELE_BOUNDS)

        regions = adata_allele.uns['allele_boundaries'].assign(source='allele')
        if regions.shape[0] == 0:
            raise ValueError(NO_ALLELE_BOUNDS)

        logging.info(f'retesting {regions.shape[0]} allele based regions')

        allele_results = {
            'regions': regions,
            'posteriors': calc_allele_cnv_prob(adata_allele, regions, pe=pe, burst=burst),
        }

        if adata is not None and 'mv_fit' in adata.uns:
            covered = np.array([gexp_region_mask(adata, region).sum() > 0 for region in regions.itertuples()])
            if covered.any():
                allele_results['combined'] = calc_combined_cnv_prob(
                    adata, adata_allele, regions[covered], m=m, pe=pe, burst=burst)
            logging.info(f'{covered.sum()} of {covered.shape[0]} allele based regions cover genes')

        adata_allele.uns['allele_results'] = allele_results
        results['allele'] = allele_results

    return results
