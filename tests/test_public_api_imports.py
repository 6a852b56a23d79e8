def test_public_imports() -> None:
    # A lightweight contract test: keep the most common imports stable.
    import greenkernels

    assert hasattr(greenkernels, "__version__")
    assert greenkernels.SPACE_DIMENSION == 3

    from greenkernels import (  # noqa: F401
        Assembler,
        EvaluationMode,
        Helmholtz,
        Laplace,
        ModifiedHelmholtz,
        PairwiseEvaluator,
        Precision,
        assemble,
        evaluate,
    )
    from greenkernels.flat import assemble_flat  # noqa: F401
