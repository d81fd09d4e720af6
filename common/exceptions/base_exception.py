class CheckedException(Exception):
    """
    Exception that the caller is expected to catch and handle,
    as opposed to programming errors.
    """
    pass
