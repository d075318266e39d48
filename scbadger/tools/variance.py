import logging
import pandas as pd
import numpy as np

from anndata import AnnData
from collections.abc import Iterable
from pandas import Series

import scbadger.utils
from scbadger.constants import NO_MV_FIT, EPS, WINDOW_SIZE


def set_mv_fit(
        adata: AnnData,
        num_genes: Iterable=range(5, 101, 5),
        rep: int=50,
        seed: int=0,
    ) -> AnnData:
    """ Model the variance of mean normalized expression as a function of the number of genes.

    For each window size k, `rep` random gene sets of size k are drawn and the
    mean normalized expression of each set is computed per cell.  A line is fit
    per cell to log10 variance of these means against log10 k.

    Parameters
    ----------
    adata : AnnData
        normalized expression data
    num_genes : Iterable, optional
        gene set sizes to sample, by default range(5, 101, 5)
    rep : int, optional
        number of gene sets sampled per size, by default 50
    seed : int, optional
        random seed, by default 0

    Returns
    -------
    AnnData
        expression data with per cell fit coefficients in `uns['mv_fit']`
    """
    if rep < 2:
        raise ValueError(f'rep must be at least 2, got {rep}')

    X = np.array(adata.X, dtype=float)
    n_cells, n_genes = X.shape

    max_k = max(1, n_genes // 2)
    requested = [int(k) for k in num_genes]
    if min(requested) < 1:
        raise ValueError('gene set sizes must be positive')
    if max(requested) > max_k:
        logging.warning(f'capping gene set sizes at {max_k} for {n_genes} genes')
    sizes = sorted(set(min(k, max_k) for k in requested))

    if len(sizes) < 2:
        raise ValueError(f'at least two distinct gene set sizes required, got {sizes}')

    rng = np.random.RandomState(seed)

    log_var = np.zeros((n_cells, len(sizes)))
    for j, k in enumerate(sizes):
        means = np.zeros((n_cells, rep))
        for r in range(rep):
            idx = rng.choice(n_genes, size=k, replace=False)
            means[:, r] = X[:, idx].mean(axis=1)
        log_var[:, j] = np.log10(np.maximum(means.var(axis=1, ddof=1), EPS))

    slope, intercept = np.polyfit(np.log10(sizes), log_var.T, 1)

    adata.uns['mv_fit'] = pd.DataFrame(
        {'intercept': intercept, 'slope': slope},
        index=adata.obs.index.copy())

    adata.uns['mv_fit_params'] = dict(
        num_genes=np.array(sizes),
        rep=rep,
        seed=seed,
    )

    logging.info(f'fit variance model for {n_cells} cells, median slope {np.median(slope):.3f}')

    return adata


def predict_mv(adata: AnnData, k: int) -> Series:
    """ Predicted variance of mean normalized expression over k genes, per cell.

    Parameters
    ----------
    adata : AnnData
        normalized expression data with variance model fit
    k : int
        number of genes

    Returns
    -------
    Series
        predicted variance indexed by cell
    """
    if 'mv_fit' not in adata.uns:
        raise ValueError(NO_MV_FIT)

    if k < 1:
        raise ValueError(f'number of genes must be positive, got {k}')

    fit = adata.uns['mv_fit']

    return 10 ** (fit['intercept'] + fit['slope'] * np.log10(k))


def set_gexp_dev(
        adata: AnnData,
        alpha: float=0.05,
        n: int=100,
        window_size: int=WINDOW_SIZE,
        seed: int=0,
    ) -> AnnData:
    """ Estimate the expected deviance of windowed normalized expression.

    `n` windows of contiguous genes on the same chromosome are drawn at random
    and the mean normalized expression of each window is computed per cell.
    The deviance is the `1 - alpha` quantile of the absolute window means.

    Parameters
    ----------
    adata : AnnData
        normalized expression data sorted by genomic position
    alpha : float, optional
        upper tail proportion, by default 0.05
    n : int, optional
        number of windows, by default 100
    window_size : int, optional
        number of genes per window, by default 101
    seed : int, optional
        random seed, by default 0

    Returns
    -------
    AnnData
        expression data with deviance in `uns['gexp_dev']`
    """
    if not 0 < alpha < 1:
        raise ValueError(f'alpha must be in (0, 1), got {alpha}')

    X = np.array(adata.X, dtype=float)
    chroms = adata.var['chr'].values

    blocks = dict(scbadger.utils.chromosome_blocks(chroms))
    half = int(window_size) // 2

    rng = np.random.RandomState(seed)

    window_means = []
    for _ in range(n):
        center = rng.randint(X.shape[1])
        block = blocks[str(chroms[center])]
        pos = np.searchsorted(block, center)
        idx = block[max(0, pos - half):pos + half + 1]
        window_means.append(X[:, idx].mean(axis=1))

    window_means = np.concatenate(window_means)

    dev = float(np.quantile(np.abs(window_means), 1. - alpha))

    adata.uns['gexp_dev'] = dev

    logging.info(f'expected expression deviance {dev:.4f}')

    return adata
