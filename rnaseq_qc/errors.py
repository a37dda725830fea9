class QCError(Exception):
    """
    base class for every error raised by the sample QC core
    """
    pass


class SchemaMismatch(QCError, ValueError):
    """
    count matrix and sample metadata do not describe the same samples/genes, never auto-corrected
    """
    pass


class InvalidCount(QCError, ValueError):
    """
    raw count matrix contains a negative, non-finite or non-integral entry
    """
    pass


class InvalidParameter(QCError, ValueError):
    """
    caller supplied parameter is outside its valid range
    """
    pass


class DegenerateLibrary(QCError, ValueError):
    """
    one or more samples have a library size of zero so CPM is undefined
    """
    def __init__(self, samples):
        self.samples = list(samples)
        super().__init__(f"Library size is zero for sample(s): {', '.join(map(str, self.samples))}, cannot normalize")


class EmptyResult(QCError):
    """
    expression filter removed every gene, raised only when the caller asks for it
    """
    pass


class NegativeEigenvalue(QCError, ArithmeticError):
    """
    distance matrix cannot be embedded in the requested number of real dimensions
    """
    def __init__(self, dimension: int, eigenvalue: float, tolerance: float):
        self.dimension = dimension
        self.eigenvalue = eigenvalue
        self.tolerance = tolerance
        super().__init__(
            f"Eigenvalue for dimension {dimension} is {eigenvalue:.6g} (tolerance {tolerance:.3g}), "
            f"distance matrix is not embeddable in {dimension} real dimensions"
        )


class InsufficientGenes(UserWarning):
    """
    fewer retained genes than the requested top_n, all retained genes were used instead
    """
    pass
