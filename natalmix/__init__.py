"""natalmix: Bayesian natal-origin mixture analysis.

Estimates the population-of-origin composition of a mixed sample with a
Pella-Masuda hierarchical mixture model fitted by Gibbs sampling:
  - Latent origin of every unknown-origin individual
  - Baseline allele frequencies (full Bayes) or fixed plug-ins (conditional GSI)
  - Mixing proportions over baseline populations and reporting groups
  - Optional auxiliary covariates: isotope signature (Gaussian) or
    pathogen infection status (Beta-Bernoulli, per stratum and group)
  - Independent parallel chains with PSRF and effective-sample-size
    diagnostics
"""

__version__ = "0.1.0"
