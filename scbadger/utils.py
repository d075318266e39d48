import copy
import logging
import pandas as pd
import numpy as np
import yaml

from natsort import natsorted
from pandas import DataFrame

from scbadger.constants import DEFAULT_PARAMS, DEFAULT_CHROMOSOMES


def normalize_chromosomes(chroms):
    """ Drop any leading `chr` from chromosome names.
    """
    return pd.Series(chroms).astype(str).str.replace('^chr', '', regex=True).values


def sort_genomic(data: DataFrame, pos_col: str='start') -> DataFrame:
    """ Sort a table by chromosome in natural order, then position.

    Parameters
    ----------
    data : DataFrame
        table with `chr` and position columns
    pos_col : str, optional
        position column, by default 'start'

    Returns
    -------
    DataFrame
        sorted copy of data
    """
    chrom_order = natsorted(data['chr'].astype(str).unique())
    data = data.copy()
    data['_chr_cat'] = pd.Categorical(data['chr'].astype(str), categories=chrom_order, ordered=True)
    data = data.sort_values(['_chr_cat', pos_col], kind='mergesort')
    data = data.drop('_chr_cat', axis=1)
    return data


def select_chromosomes(data: DataFrame, chromosomes=None) -> DataFrame:
    """ Normalize chromosome names and restrict to a set of chromosomes.
    """
    if chromosomes is None:
        chromosomes = DEFAULT_CHROMOSOMES
    chromosomes = set(normalize_chromosomes(chromosomes))

    data = data.copy()
    data['chr'] = normalize_chromosomes(data['chr'])

    n_before = data.shape[0]
    data = data[data['chr'].isin(chromosomes)]
    if data.shape[0] < n_before:
        logging.info(f'removed {n_before - data.shape[0]} of {n_before} rows outside of selected chromosomes')

    return data


def chromosome_blocks(chroms):
    """ Iterate contiguous index blocks of a sorted chromosome array.

    Yields
    ------
    tuple
        chromosome name, integer index array
    """
    chroms = np.asarray(chroms).astype(str)
    for chrom in pd.unique(chroms):
        yield chrom, np.where(chroms == chrom)[0]


def region_id(source, chrom, start, end, cnv_type):
    return f'{source}_{chrom}_{int(start)}_{int(end)}_{cnv_type}'


def read_params(filename):
    """ Read parameter overrides from a yaml file.

    The file has one mapping per workflow step, for example::

        calc_gexp_cnv_boundaries:
          min_traverse: 2
          t: 1.0e-5

    Args:
        filename (str): yaml filename

    Returns:
        dict: parameters merged over the defaults
    """
    with open(filename) as f:
        overrides = yaml.safe_load(f)

    if overrides is None:
        overrides = {}

    return merge_params(overrides)


def merge_params(overrides=None):
    """ Merge step parameter overrides over the default parameters.
    """
    params = copy.deepcopy(DEFAULT_PARAMS)

    if overrides is None:
        return params

    for step, step_params in overrides.items():
        if step not in params:
            raise ValueError(f'unknown step {step}')
        if step_params is None:
            continue
        unknown = set(step_params) - set(params[step])
        if unknown:
            raise ValueError(f'unknown parameters {sorted(unknown)} for step {step}')
        params[step].update(step_params)

    return params
