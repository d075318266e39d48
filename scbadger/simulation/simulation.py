import numpy as np
import pandas as pd

from scbadger.constants import GEXP_STATES


DEFAULT_CNVS = [
    {'chr': '2', 'start_gene': 50, 'end_gene': 149, 'cnv_type': 'amp'},
    {'chr': '4', 'start_gene': 20, 'end_gene': 119, 'cnv_type': 'del'},
]


def simulate_genes(chromosomes=('1', '2', '3', '4', '5'), n_genes_per_chrom=200, gene_spacing=10000, gene_length=5000):
    """ Evenly spaced gene coordinates, `gene_spacing` apart on each chromosome.
    """
    genes = []
    for chrom in chromosomes:
        starts = np.arange(n_genes_per_chrom) * gene_spacing + 1
        genes.append(pd.DataFrame({
            'chr': str(chrom),
            'start': starts,
            'end': starts + gene_length - 1,
        }, index=[f'gene{chrom}_{i}' for i in range(n_genes_per_chrom)]))

    genes = pd.concat(genes)
    genes.index.name = 'gene'

    return genes


def cnv_table(genes, cnvs=None):
    """ Convert CNVs given as gene index ranges per chromosome to coordinates.
    """
    if cnvs is None:
        cnvs = DEFAULT_CNVS

    rows = []
    for cnv in cnvs:
        if cnv['cnv_type'] not in GEXP_STATES[1:]:
            raise ValueError(f"unknown cnv type {cnv['cnv_type']}")
        chrom_genes = genes[genes['chr'] == str(cnv['chr'])]
        region_genes = chrom_genes.iloc[cnv['start_gene']:cnv['end_gene'] + 1]
        rows.append({
            'chr': str(cnv['chr']),
            'start': int(region_genes['start'].min()),
            'end': int(region_genes['end'].max()),
            'cnv_type': cnv['cnv_type'],
        })

    return pd.DataFrame(rows, columns=['chr', 'start', 'end', 'cnv_type'])


def _in_cnv(chroms, starts, ends, cnv):
    return (chroms == cnv.chr) & (starts <= cnv.end) & (ends >= cnv.start)


def simulate_gexp(
        chromosomes=('1', '2', '3', '4', '5'),
        n_genes_per_chrom=200,
        n_normal=30,
        n_tumor=30,
        n_ref=10,
        cnvs=None,
        shift=0.8,
        noise=0.5,
        ref_noise=0.3,
        seed=0,
    ):
    """ Simulate log scale single cell and reference expression with clonal CNVs.

    Gene baselines are drawn from N(5, 1.5).  Reference samples and normal
    cells vary around the baseline, tumor cells additionally carry a shift of
    +`shift` in amplified and -`shift` in deleted genes.

    Args:
        chromosomes (list): chromosome names
        n_genes_per_chrom (int): genes simulated per chromosome
        n_normal (int): number of normal cells
        n_tumor (int): number of tumor cells carrying every CNV
        n_ref (int): number of reference samples
        cnvs (list of dict): CNVs with keys 'chr', 'start_gene', 'end_gene'
            (gene indices within the chromosome, inclusive) and 'cnv_type'
        shift (float): expression shift in CNV genes of tumor cells
        noise (float): single cell expression noise
        ref_noise (float): reference sample expression noise
        seed (int): random seed

    Returns:
        dict: 'gexp_sc' genes x cells, 'gexp_ref' genes x samples, 'genes'
            coordinates, 'cnvs' true regions and 'tumor_cells'
    """
    rs = np.random.RandomState(seed)

    genes = simulate_genes(chromosomes=chromosomes, n_genes_per_chrom=n_genes_per_chrom)
    cnvs = cnv_table(genes, cnvs)

    n_genes = genes.shape[0]
    baseline = rs.normal(5., 1.5, size=n_genes)

    ref = baseline[:, np.newaxis] + rs.normal(0., ref_noise, size=(n_genes, n_ref))

    normal_cells = [f'normal_{i}' for i in range(n_normal)]
    tumor_cells = [f'tumor_{i}' for i in range(n_tumor)]

    sc = baseline[:, np.newaxis] + rs.normal(0., noise, size=(n_genes, n_normal + n_tumor))

    chroms = genes['chr'].values
    for cnv in cnvs.itertuples():
        gene_mask = _in_cnv(chroms, genes['start'].values, genes['end'].values, cnv)
        sign = 1. if cnv.cnv_type == 'amp' else -1.
        sc[np.ix_(gene_mask, np.arange(n_normal, n_normal + n_tumor))] += sign * shift

    gexp_sc = pd.DataFrame(sc, index=genes.index, columns=normal_cells + tumor_cells)
    gexp_ref = pd.DataFrame(ref, index=genes.index, columns=[f'ref_{i}' for i in range(n_ref)])

    return {
        'gexp_sc': gexp_sc,
        'gexp_ref': gexp_ref,
        'genes': genes,
        'cnvs': cnvs,
        'tumor_cells': pd.Index(tumor_cells),
    }


def simulate_alleles(
        genes,
        cell_ids,
        tumor_cells,
        cnvs,
        depth=20.,
        dropout=0.3,
        burst=5.,
        pe=0.1,
        n_homozygous=10,
        seed=0,
    ):
    """ Simulate allele counts for one heterozygous SNP per gene.

    Deleted regions of tumor cells lose one haplotype, the retained haplotype
    of each SNP being the alternate allele with probability 1/2.  Elsewhere the
    alternate allele fraction of each cell is drawn from Beta(burst, burst).
    Homozygous alternate SNPs are added to exercise filtering.

    Args:
        genes (DataFrame): gene coordinates as returned by `simulate_genes`
        cell_ids (list): all cell ids
        tumor_cells (list): ids of cells carrying the CNVs
        cnvs (DataFrame): CNV coordinates, 'del' regions are simulated as LOH
        depth (float): mean coverage of covered SNPs
        dropout (float): probability a SNP is not covered in a cell
        burst (float): beta shape of allele fractions in balanced regions
        pe (float): probability of observing the lost allele in LOH regions
        n_homozygous (int): number of homozygous SNPs added
        seed (int): random seed

    Returns:
        dict: 'alt_counts' and 'total_counts' SNPs x cells, 'snps' positions
            and 'loh_snps' ids of SNPs in LOH regions
    """
    rs = np.random.RandomState(seed)

    cell_ids = pd.Index(cell_ids)
    is_tumor = cell_ids.isin(tumor_cells)

    snps = pd.DataFrame({
        'chr': genes['chr'].values,
        'pos': genes['start'].values + rs.randint(0, (genes['end'] - genes['start']).values + 1),
    })

    hom_idx = rs.choice(snps.shape[0], size=n_homozygous, replace=False)
    is_hom = np.zeros(snps.shape[0], dtype=bool)
    is_hom[hom_idx] = True

    snps.index = snps['chr'] + ':' + snps['pos'].astype(str)
    snps.index.name = 'snp_id'

    n_snps = snps.shape[0]
    n_cells = cell_ids.shape[0]

    total = rs.poisson(depth, size=(n_snps, n_cells))
    total[rs.uniform(size=(n_snps, n_cells)) < dropout] = 0

    p = rs.beta(burst, burst, size=(n_snps, n_cells))

    is_loh = np.zeros(n_snps, dtype=bool)
    for cnv in cnvs[cnvs['cnv_type'] == 'del'].itertuples():
        is_loh |= _in_cnv(snps['chr'].values, snps['pos'].values, snps['pos'].values, cnv)
    is_loh &= ~is_hom

    retained_alt = rs.uniform(size=n_snps) < 0.5
    loh_p = np.where(retained_alt, 1. - pe, pe)
    p[np.ix_(is_loh, is_tumor)] = loh_p[is_loh, np.newaxis]

    alt = rs.binomial(total, p)
    alt[is_hom] = total[is_hom]

    alt_counts = pd.DataFrame(alt, index=snps.index, columns=cell_ids)
    total_counts = pd.DataFrame(total, index=snps.index, columns=cell_ids)

    return {
        'alt_counts': alt_counts,
        'total_counts': total_counts,
        'snps': snps,
        'loh_snps': snps.index[is_loh],
    }
