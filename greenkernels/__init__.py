from .assembly import Assembler, assemble, assemble_pairwise, potential
from .errors import ContractViolation, GreenKernelsError, SingularSeparationError
from .kernel import (
    SPACE_DIMENSION,
    EvaluationMode,
    Helmholtz,
    KernelVariant,
    Laplace,
    ModifiedHelmholtz,
    range_component_count,
)
from .pairwise import InteractionResult, PairwiseEvaluator, evaluate, greens_function
from .policy import DiagonalPolicy, SingularPolicy
from .precision import Precision

__version__ = "0.1.0"
