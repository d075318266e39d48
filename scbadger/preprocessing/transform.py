import numpy as np
import sklearn.preprocessing

from numpy import ndarray


def fill_missing(data: ndarray) -> ndarray:
    """ Fill missing values with means of non-nan values across rows.

    Deal with missing values by assigning the mean value
    of each column to missing values of that column

    Parameters
    ----------
    data : ndarray
        data to fill

    Returns
    -------
    ndarray
        copy of data with missing entries filled
    """

    data = np.array(data, dtype=float)

    # Set columns with nan across all rows to 0
    data[:, np.all(np.isnan(data), axis=0)] = 0

    # Mean of each column, ignoring nan
    col_means = np.nanmean(data, axis=0)
    col_means = np.nan_to_num(col_means, nan=0)
    col_means = np.tile(col_means, (data.shape[0], 1))
    data[np.where(np.isnan(data))] = col_means[np.where(np.isnan(data))]

    return data


def scale_columns(data: ndarray) -> ndarray:
    """ Center and scale each column to unit variance.

    Constant columns are centered and left with zero variance.

    Parameters
    ----------
    data : ndarray
        data to scale, 1d data is treated as a single column

    Returns
    -------
    ndarray
        scaled copy of data
    """

    data = np.array(data, dtype=float)

    if data.ndim == 1:
        return sklearn.preprocessing.StandardScaler().fit_transform(data[:, np.newaxis])[:, 0]

    return sklearn.preprocessing.StandardScaler().fit_transform(data)
