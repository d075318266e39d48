import logging

import scbadger.utils
import scbadger.preprocessing
import scbadger.tools
from scbadger.constants import NO_GEXP, NO_ALLELE, NO_MV_FIT


class CnvAnalysis:
    """ Single cell CNV and LOH analysis of expression and allele data.

    Holds normalized expression (`gexp`) and allele count (`allele`) AnnData
    and runs each step of the analysis with parameters taken from `params`,
    overridden by keyword arguments of the step.
    """
    def __init__(self, params=None):
        self.params = scbadger.utils.merge_params(params)
        self.gexp = None
        self.allele = None
        self.genes = None

    @classmethod
    def from_yaml(cls, filename):
        """ Create an analysis with parameters read from a yaml file.
        """
        analysis = cls()
        analysis.params = scbadger.utils.read_params(filename)
        return analysis

    def _step_params(self, step, kwargs):
        params = dict(self.params[step])
        params.update(kwargs)
        return params

    def _check_gexp(self):
        if self.gexp is None:
            raise ValueError(NO_GEXP)

    def _check_allele(self):
        if self.allele is None:
            raise ValueError(NO_ALLELE)

    def set_gexp_mats(self, gexp_sc, gexp_ref, genes, **kwargs):
        """ Normalize single cell expression against a reference.

        Args:
            gexp_sc (pandas.DataFrame): single cell expression, genes x cells
            gexp_ref (pandas.Series or pandas.DataFrame): reference expression
            genes (pandas.DataFrame or pyranges.PyRanges): gene coordinates

        Returns:
            anndata.AnnData: normalized expression
        """
        params = self._step_params('set_gexp_mats', kwargs)
        self.genes = genes
        self.gexp = scbadger.preprocessing.create_gexp_anndata(gexp_sc, gexp_ref, genes, **params)
        logging.info(f'set expression matrices for {self.gexp.shape[0]} cells and {self.gexp.shape[1]} genes')
        return self.gexp

    def set_mv_fit(self, **kwargs):
        self._check_gexp()
        params = self._step_params('set_mv_fit', kwargs)
        return scbadger.tools.set_mv_fit(self.gexp, **params)

    def set_gexp_dev(self, **kwargs):
        self._check_gexp()
        params = self._step_params('set_gexp_dev', kwargs)
        return scbadger.tools.set_gexp_dev(self.gexp, **params)

    def calc_gexp_cnv_boundaries(self, **kwargs):
        """ Identify amplified and deleted regions, see `scbadger.tl.calc_gexp_cnv_boundaries`.

        Repeated calls accumulate regions unless `init=True`.
        """
        self._check_gexp()
        params = self._step_params('calc_gexp_cnv_boundaries', kwargs)
        return scbadger.tools.calc_gexp_cnv_boundaries(self.gexp, **params)

    def set_allele_mats(self, alt_counts, total_counts, snps=None, n_bulk=None, r_bulk=None, **kwargs):
        """ Set allele counts restricted to putative heterozygous SNPs.

        Args:
            alt_counts (pandas.DataFrame): alternate allele counts, SNPs x cells
            total_counts (pandas.DataFrame): total coverage, SNPs x cells
            snps (pandas.DataFrame): SNP positions, parsed from `chr:pos` ids if not given
            n_bulk (pandas.Series): bulk coverage per SNP
            r_bulk (pandas.Series): bulk alternate allele counts per SNP

        Returns:
            anndata.AnnData: allele counts
        """
        params = self._step_params('set_allele_mats', kwargs)
        self.allele = scbadger.preprocessing.create_allele_anndata(
            alt_counts, total_counts, snps=snps, n_bulk=n_bulk, r_bulk=r_bulk, **params)
        logging.info(f'set allele matrices for {self.allele.shape[0]} cells and {self.allele.shape[1]} SNPs')
        return self.allele

    def set_gene_factors(self, genes=None):
        """ Map SNPs to genes, by default the genes given to `set_gexp_mats`.
        """
        self._check_allele()

        if genes is None:
            genes = self.genes
        if genes is None:
            raise ValueError('no gene coordinates given and no expression matrices set')

        return scbadger.tools.set_gene_factors(self.allele, genes)

    def calc_allele_cnv_boundaries(self, **kwargs):
        """ Identify LOH regions, see `scbadger.tl.calc_allele_cnv_boundaries`.
        """
        self._check_allele()
        params = self._step_params('calc_allele_cnv_boundaries', kwargs)
        return scbadger.tools.calc_allele_cnv_boundaries(self.allele, **params)

    def retest_identified_cnvs(self, retest_bound_genes=True, retest_bound_snps=False, **kwargs):
        """ Per cell posterior probabilities for identified regions.

        Expression and allele evidence are combined where both are available.

        Args:
            retest_bound_genes (bool): retest regions identified from expression
            retest_bound_snps (bool): retest regions identified from allele counts

        Returns:
            dict: results keyed by 'gexp' and / or 'allele'
        """
        if retest_bound_genes:
            self._check_gexp()
            if 'mv_fit' not in self.gexp.uns:
                raise ValueError(NO_MV_FIT)
        if retest_bound_snps:
            self._check_allele()

        params = self._step_params('retest_identified_cnvs', kwargs)

        return scbadger.tools.retest_identified_cnvs(
            adata=self.gexp,
            adata_allele=self.allele,
            retest_bound_genes=retest_bound_genes,
            retest_bound_snps=retest_bound_snps,
            **params)

    def summarize_results(self, gene_based=True, allele_based=False, **kwargs):
        params = self._step_params('summarize_results', kwargs)
        return scbadger.tools.summarize_results(
            adata=self.gexp,
            adata_allele=self.allele,
            gene_based=gene_based,
            allele_based=allele_based,
            **params)

    def cluster_cells(self, key='gexp_results', **kwargs):
        """ Cluster cells on posteriors of retested regions.

        Args:
            key (str): 'gexp_results' or 'allele_results'

        Returns:
            numpy.ndarray: linkage matrix
        """
        if key == 'allele_results':
            self._check_allele()
            adata = self.allele
        else:
            self._check_gexp()
            adata = self.gexp

        params = self._step_params('cluster_cells', kwargs)
        return scbadger.tools.cluster_cells(adata, key=key, **params)
