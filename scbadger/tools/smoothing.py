import logging
import pandas as pd
import numpy as np

from anndata import AnnData

import scbadger.utils
from scbadger.constants import WINDOW_SIZE, SMOOTH_LAYER


def running_mean(data: np.ndarray, window_size: int) -> np.ndarray:
    """ Centered running mean down the rows of a matrix, truncated at the ends.

    Parameters
    ----------
    data : ndarray
        positions x samples
    window_size : int
        window width in rows

    Returns
    -------
    ndarray
        smoothed data with the same shape
    """
    window_size = max(1, min(int(window_size), data.shape[0]))
    return (
        pd.DataFrame(data)
            .rolling(window_size, center=True, min_periods=1)
            .mean()
            .values)


def smooth_expression(
        adata: AnnData,
        window_size: int=WINDOW_SIZE,
        layer_name: str=SMOOTH_LAYER,
    ) -> AnnData:
    """ Smooth normalized expression along each chromosome.

    Parameters
    ----------
    adata : AnnData
        normalized expression data sorted by genomic position
    window_size : int, optional
        number of genes in the sliding window, by default 101
    layer_name : str, optional
        layer to store the smoothed expression, by default 'gexp_smooth'

    Returns
    -------
    AnnData
        expression data with smoothed layer added
    """
    X = np.array(adata.X, dtype=float)
    smoothed = np.zeros(X.shape)

    for chrom, idx in scbadger.utils.chromosome_blocks(adata.var['chr'].values):
        smoothed[:, idx] = running_mean(X[:, idx].T, window_size).T

    logging.info(f'smoothed expression with window size {window_size}')

    adata.layers[layer_name] = smoothed
    adata.uns['smoothing'] = {'window_size': int(window_size)}

    return adata
