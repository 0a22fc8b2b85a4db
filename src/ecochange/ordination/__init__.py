"""
Ordination of species matrices into two dimensions.

- nmds: non-metric multidimensional scaling with repeated random starts
- latent_ordination: latent-variable count model fit by MCMC
- compare_ordinations: Procrustes agreement between two embeddings
"""
from .result import OrdinationResult
from .distances import dissimilarity_matrix, available_metrics
from .nmds import nmds, pcoa_configuration
from .latent import latent_ordination
from .procrustes import compare_ordinations, ProcrustesResult

__all__ = [
    "OrdinationResult",
    "dissimilarity_matrix",
    "available_metrics",
    "nmds",
    "pcoa_configuration",
    "latent_ordination",
    "compare_ordinations",
    "ProcrustesResult",
]
