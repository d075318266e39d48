import logging
import collections
import pandas as pd
import numpy as np
import scipy.cluster.hierarchy as sch
import scipy.stats

from anndata import AnnData
from pandas import DataFrame
from typing import Sequence

import scbadger.hmm
import scbadger.utils
import scbadger.tools.ranges
import scbadger.tools.smoothing
import scbadger.preprocessing.transform
from scbadger.constants import (
    DEFAULT_M, GEXP_STATES, ALLELE_STATES, MAD_FLOOR, SMOOTH_LAYER, WINDOW_SIZE)


def traverse_cell_tree(X, min_traverse=3, min_cells=2):
    """ Groups of cells from a breadth first traversal of a hierarchical clustering.

    Args:
        X (ndarray): cells x features used to build the tree
        min_traverse (int): depth of the deepest nodes visited, root is depth 0
        min_cells (int): skip nodes with fewer cells

    Returns:
        list of tuple: (depth, sorted cell indices) for each visited node
    """
    n_cells = X.shape[0]

    if n_cells < 2:
        return [(0, np.arange(n_cells))]

    linkage = sch.linkage(X, method='ward', metric='euclidean')
    root = sch.to_tree(linkage)

    groups = []
    queue = collections.deque([(root, 0)])
    while queue:
        node, depth = queue.popleft()
        cell_idx = np.sort(np.array(node.pre_order()))

        if cell_idx.shape[0] < min_cells:
            continue

        groups.append((depth, cell_idx))

        if depth < min_traverse and not node.is_leaf():
            queue.append((node.get_left(), depth + 1))
            queue.append((node.get_right(), depth + 1))

    return groups


def robust_sd(values):
    """ Noise sd of a piecewise constant sequence.

    Normal consistent MAD of successive differences, scaled by 1/sqrt(2).
    Shifts between segments only affect the few differences spanning them.
    """
    values = np.asarray(values, dtype=float)
    diffs = np.diff(values[np.isfinite(values)])

    if diffs.shape[0] == 0:
        return MAD_FLOOR

    sd = scipy.stats.median_abs_deviation(diffs, scale='normal') / np.sqrt(2.)
    if not np.isfinite(sd):
        return MAD_FLOOR

    return max(float(sd), MAD_FLOOR)


def _finalize_regions(candidates, previous, source, features, pos_cols, feature_col):
    """ Merge candidate regions with any previous boundaries and annotate features.
    """
    candidates = candidates.assign(n_support=1)

    if previous is not None and previous.shape[0] > 0:
        candidates = pd.concat([
            previous[['chr', 'start', 'end', 'cnv_type', 'n_support']],
            candidates,
        ], ignore_index=True)

    regions = scbadger.tools.ranges.merge_regions(candidates)

    start_col, end_col = pos_cols

    region_ids = []
    feature_lists = []
    n_features = []
    for row in regions.itertuples():
        mask = scbadger.tools.ranges.in_region(
            features['chr'].values, features[start_col].values, features[end_col].values,
            row.chr, row.start, row.end)
        region_ids.append(scbadger.utils.region_id(source, row.chr, row.start, row.end, row.cnv_type))
        feature_lists.append(','.join(features.index[mask].astype(str)))
        n_features.append(int(mask.sum()))

    regions['region_id'] = region_ids
    regions[feature_col] = feature_lists
    regions[f'n_{feature_col}'] = n_features

    regions = regions[['region_id', 'chr', 'start', 'end', 'cnv_type', f'n_{feature_col}', feature_col, 'n_support']]

    return regions


def calc_gexp_cnv_boundaries(
        adata: AnnData,
        m: float=None,
        chrs: Sequence[str]=None,
        min_traverse: int=3,
        t: float=1e-6,
        min_num_genes: int=3,
        trim: float=0.1,
        min_cells: int=2,
        window_size: int=WINDOW_SIZE,
        init: bool=False,
    ) -> DataFrame:
    """ Identify amplified and deleted regions from normalized expression.

    Cells are hierarchically clustered on smoothed expression.  For each group
    of cells visited in a breadth first traversal of the tree, the trimmed mean
    expression of each gene is segmented per chromosome by a 3 state HMM with
    neutral, deleted (-m) and amplified (+m) states.  The emission sd is the
    noise of the group's gene means, see `robust_sd`, and each chromosome
    starts in the neutral state.  Runs of deleted or amplified genes form
    candidate regions which are merged across groups.

    Parameters
    ----------
    adata : AnnData
        normalized expression data
    m : float, optional
        expected shift in expression for amplified and deleted regions, by default None,
        the deviance from `set_gexp_dev` if available else 0.15
    chrs : list, optional
        chromosomes to segment, by default None for all
    min_traverse : int, optional
        depth of the cell tree traversal, by default 3
    t : float, optional
        HMM transition probability, by default 1e-6
    min_num_genes : int, optional
        minimum number of genes in a region, by default 3
    trim : float, optional
        proportion trimmed from each end when averaging across cells, by default 0.1
    min_cells : int, optional
        minimum number of cells in a group, by default 2
    window_size : int, optional
        smoothing window used for clustering cells, by default 101
    init : bool, optional
        discard previously identified boundaries, by default False

    Returns
    -------
    DataFrame
        identified regions, also stored in `uns['gexp_boundaries']`
    """
    if m is None:
        m = adata.uns.get('gexp_dev', DEFAULT_M)

    if m <= 0:
        raise ValueError(f'm must be positive, got {m}')

    if SMOOTH_LAYER not in adata.layers or adata.uns.get('smoothing', {}).get('window_size') != window_size:
        scbadger.tools.smoothing.smooth_expression(adata, window_size=window_size)

    X = np.array(adata.X, dtype=float)
    var = adata.var
    chroms = var['chr'].astype(str).values

    if chrs is not None:
        chrs = set(scbadger.utils.normalize_chromosomes(chrs))

    groups = traverse_cell_tree(np.array(adata.layers[SMOOTH_LAYER]), min_traverse=min_traverse, min_cells=min_cells)
    logging.info(f'segmenting expression for {len(groups)} cell groups with m={m:.4f}')

    means = [0., -m, m]
    startprob = scbadger.hmm.neutral_startprob(len(means), t)

    candidates = []
    for depth, cell_idx in groups:
        group_means = scipy.stats.trim_mean(X[cell_idx], trim, axis=0)

        for chrom, gene_idx in scbadger.utils.chromosome_blocks(chroms):
            if chrs is not None and chrom not in chrs:
                continue

            if gene_idx.shape[0] < min_num_genes:
                continue

            values = group_means[gene_idx]
            sd = robust_sd(values)

            states = scbadger.hmm.decode_gaussian(values, means, sd, t, startprob=startprob)
            runs = scbadger.hmm.state_runs(states)
            runs = runs[(runs['state'] != 0) & (runs['length'] >= min_num_genes)]

            for run in runs.itertuples():
                run_genes = gene_idx[run.start_idx:run.end_idx + 1]
                candidates.append({
                    'chr': chrom,
                    'start': int(var['start'].values[run_genes].min()),
                    'end': int(var['end'].values[run_genes].max()),
                    'cnv_type': GEXP_STATES[run.state],
                })

    candidates = pd.DataFrame(candidates, columns=['chr', 'start', 'end', 'cnv_type'])
    logging.info(f'found {candidates.shape[0]} candidate regions')

    previous = None if init else adata.uns.get('gexp_boundaries')

    regions = _finalize_regions(candidates, previous, 'gexp', var, ('start', 'end'), 'genes')
    regions = regions[regions['n_genes'] >= min_num_genes].reset_index(drop=True)

    adata.uns['gexp_boundaries'] = regions
    adata.uns['gexp_boundaries_params'] = dict(
        m=m,
        min_traverse=min_traverse,
        t=t,
        min_num_genes=min_num_genes,
        trim=trim,
        min_cells=min_cells,
        window_size=window_size,
    )

    logging.info(f'identified {regions.shape[0]} gene based regions')

    return regions


def allelic_imbalance(adata: AnnData) -> np.ndarray:
    """ Per cell absolute deviation of the lesser allele fraction from 0.5, nan where uncovered.
    """
    lesser = np.array(adata.layers['lesser_counts'], dtype=float)
    total = np.array(adata.layers['total_counts'], dtype=float)

    with np.errstate(invalid='ignore', divide='ignore'):
        fraction = lesser / total

    fraction[total == 0] = np.nan

    return np.abs(fraction - 0.5)


def calc_allele_cnv_boundaries(
        adata: AnnData,
        min_traverse: int=3,
        t: float=1e-6,
        pe: float=0.1,
        burst: float=0.5,
        min_num_snps: int=5,
        min_cells: int=2,
        init: bool=False,
    ) -> DataFrame:
    """ Identify regions of loss of heterozygosity from allele counts.

    Cells are hierarchically clustered on allelic imbalance.  For each group of
    cells visited in a breadth first traversal of the tree, lesser allele and
    total counts are pooled per SNP and segmented per chromosome by a 2 state
    HMM.  The neutral state emits counts balanced up to allelic bursting in the
    pooled cells, the LOH state emits counts imbalanced towards either allele
    with error rate `pe`.

    Parameters
    ----------
    adata : AnnData
        allele count data
    min_traverse : int, optional
        depth of the cell tree traversal, by default 3
    t : float, optional
        HMM transition probability, by default 1e-6
    pe : float, optional
        probability of observing the lost allele in an LOH region, by default 0.1
    burst : float, optional
        beta shape of single cell allelic fractions in balanced regions, by default 0.5
    min_num_snps : int, optional
        minimum number of covered SNPs in a region, by default 5
    min_cells : int, optional
        minimum number of cells in a group, by default 2
    init : bool, optional
        discard previously identified boundaries, by default False

    Returns
    -------
    DataFrame
        identified regions, also stored in `uns['allele_boundaries']`
    """
    if not 0 < pe < 0.5:
        raise ValueError(f'pe must be in (0, 0.5), got {pe}')

    lesser = np.array(adata.layers['lesser_counts'], dtype=float)
    total = np.array(adata.layers['total_counts'], dtype=float)
    var = adata.var
    chroms = var['chr'].astype(str).values

    imbalance = scbadger.preprocessing.transform.fill_missing(allelic_imbalance(adata))
    groups = traverse_cell_tree(imbalance, min_traverse=min_traverse, min_cells=min_cells)
    logging.info(f'segmenting allele counts for {len(groups)} cell groups')

    startprob = scbadger.hmm.neutral_startprob(len(ALLELE_STATES), t)

    candidates = []
    for depth, cell_idx in groups:
        group_lesser = lesser[cell_idx].sum(axis=0)
        group_total = total[cell_idx].sum(axis=0)
        group_cells = (total[cell_idx] > 0).sum(axis=0)

        for chrom, snp_idx in scbadger.utils.chromosome_blocks(chroms):
            snp_idx = snp_idx[group_total[snp_idx] > 0]

            if snp_idx.shape[0] < min_num_snps:
                continue

            states = scbadger.hmm.decode_allele(
                group_lesser[snp_idx], group_total[snp_idx], group_cells[snp_idx], pe, burst, t,
                startprob=startprob)
            runs = scbadger.hmm.state_runs(states)
            runs = runs[(runs['state'] != 0) & (runs['length'] >= min_num_snps)]

            for run in runs.itertuples():
                run_snps = snp_idx[run.start_idx:run.end_idx + 1]
                candidates.append({
                    'chr': chrom,
                    'start': int(var['pos'].values[run_snps].min()),
                    'end': int(var['pos'].values[run_snps].max()),
                    'cnv_type': ALLELE_STATES[run.state],
                })

    candidates = pd.DataFrame(candidates, columns=['chr', 'start', 'end', 'cnv_type'])
    logging.info(f'found {candidates.shape[0]} candidate regions')

    previous = None if init else adata.uns.get('allele_boundaries')

    regions = _finalize_regions(candidates, previous, 'allele', var, ('pos', 'pos'), 'snps')

    adata.uns['allele_boundaries'] = regions
    adata.uns['allele_boundaries_params'] = dict(
        min_traverse=min_traverse,
        t=t,
        pe=pe,
        burst=burst,
        min_num_snps=min_num_snps,
        min_cells=min_cells,
    )

    logging.info(f'identified {regions.shape[0]} allele based regions')

    return regions
