from .genes import read_ensemble_genes_gtf, genes_table, set_gene_factors, snps_in_genes
from .smoothing import smooth_expression, running_mean
from .variance import set_mv_fit, predict_mv, set_gexp_dev
from .boundaries import calc_gexp_cnv_boundaries, calc_allele_cnv_boundaries, traverse_cell_tree, allelic_imbalance
from .posterior import calc_gexp_cnv_prob, calc_allele_cnv_prob, calc_combined_cnv_prob, retest_identified_cnvs
from .summary import summarize_results, posterior_matrix, cluster_cells
from .ranges import merge_regions, in_region
