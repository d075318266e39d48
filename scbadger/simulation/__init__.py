from .simulation import simulate_genes, simulate_gexp, simulate_alleles, cnv_table
