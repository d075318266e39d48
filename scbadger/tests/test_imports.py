
def test_imports():
    import scbadger
    import scbadger.pp
    import scbadger.tl
    import scbadger.hmm
    import scbadger.utils
    import scbadger.analysis
    import scbadger.simulation
    import scbadger.preprocessing.transform
    import scbadger.preprocessing.load_gexp
    import scbadger.preprocessing.load_allele
    import scbadger.tools.ranges
    import scbadger.tools.posterior

    print(scbadger.CnvAnalysis)

    print(scbadger.pp.fill_missing)
    print(scbadger.pp.scale_columns)
    print(scbadger.pp.create_gexp_anndata)
    print(scbadger.pp.create_allele_anndata)
    print(scbadger.pp.parse_snp_positions)

    print(scbadger.tl.read_ensemble_genes_gtf)
    print(scbadger.tl.genes_table)
    print(scbadger.tl.set_gene_factors)
    print(scbadger.tl.snps_in_genes)
    print(scbadger.tl.smooth_expression)
    print(scbadger.tl.set_mv_fit)
    print(scbadger.tl.predict_mv)
    print(scbadger.tl.set_gexp_dev)
    print(scbadger.tl.calc_gexp_cnv_boundaries)
    print(scbadger.tl.calc_allele_cnv_boundaries)
    print(scbadger.tl.calc_gexp_cnv_prob)
    print(scbadger.tl.calc_allele_cnv_prob)
    print(scbadger.tl.calc_combined_cnv_prob)
    print(scbadger.tl.retest_identified_cnvs)
    print(scbadger.tl.summarize_results)
    print(scbadger.tl.cluster_cells)
    print(scbadger.tl.merge_regions)

    print(scbadger.simulation.simulate_gexp)
    print(scbadger.simulation.simulate_alleles)
