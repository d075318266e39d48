import pandas as pd
import numpy as np
import pyranges as pr

from pandas import DataFrame

import scbadger.utils


REGION_COLUMNS = ['chr', 'start', 'end', 'cnv_type', 'n_support']


class Ranges(object):
    """ Conversion between inclusive `chr`, `start`, `end` tables and half open PyRanges.
    """

    def convert_to_pyranges(self, data):
        assert 'chr' in data.columns
        assert 'start' in data.columns
        assert 'end' in data.columns

        data = data.rename(columns={
            'chr': 'Chromosome',
            'start': 'Start',
            'end': 'End',
        })
        data['Chromosome'] = data['Chromosome'].astype(str)
        data['Start'] = data['Start'].astype(int)
        data['End'] = data['End'].astype(int) + 1

        return pr.PyRanges(data)

    def convert_to_dataframe(self, ranges):
        data = ranges.as_df().rename(columns={
            'Chromosome': 'chr',
            'Start': 'start',
            'End': 'end',
        })
        data['chr'] = data['chr'].astype(str)
        data['end'] = data['end'] - 1

        return data

    def merge_by(self, data, by):
        ranges = self.convert_to_pyranges(data[['chr', 'start', 'end', by]].copy())
        merged = ranges.merge(strand=False, by=by)
        return self.convert_to_dataframe(merged)


def merge_regions(regions: DataFrame) -> DataFrame:
    """ Merge overlapping regions of the same CNV type.

    Parameters
    ----------
    regions : DataFrame
        regions with columns 'chr', 'start', 'end' (inclusive) and 'cnv_type'

    Returns
    -------
    DataFrame
        merged regions sorted by position, with `n_support` the number of
        input regions merged into each
    """
    if regions.shape[0] == 0:
        return pd.DataFrame(columns=REGION_COLUMNS)

    if 'n_support' not in regions.columns:
        regions = regions.assign(n_support=1)

    merged = []
    for cnv_type, type_regions in regions.groupby('cnv_type'):
        type_merged = Ranges().merge_by(type_regions, 'cnv_type')

        # Carry support from previously merged regions
        support = []
        for row in type_merged.itertuples():
            overlapping = type_regions[
                (type_regions['chr'].astype(str) == row.chr) &
                (type_regions['start'] <= row.end) &
                (type_regions['end'] >= row.start)]
            support.append(int(overlapping['n_support'].sum()))
        type_merged['n_support'] = support

        merged.append(type_merged)

    merged = pd.concat(merged, ignore_index=True)[REGION_COLUMNS]
    merged = scbadger.utils.sort_genomic(merged).reset_index(drop=True)

    return merged


def in_region(chroms, starts, ends, chrom, start, end) -> np.ndarray:
    """ Boolean mask of features falling entirely within a region.
    """
    chroms = np.asarray(chroms).astype(str)
    return (chroms == str(chrom)) & (np.asarray(starts) >= start) & (np.asarray(ends) <= end)


def overlaps_region(chroms, starts, ends, chrom, start, end) -> np.ndarray:
    """ Boolean mask of features overlapping a region.
    """
    chroms = np.asarray(chroms).astype(str)
    return (chroms == str(chrom)) & (np.asarray(starts) <= end) & (np.asarray(ends) >= start)
