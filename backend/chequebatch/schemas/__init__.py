from chequebatch.schemas.batch import BatchFile, BatchSubmission, ProcessingOptions

__all__ = ["BatchFile", "BatchSubmission", "ProcessingOptions"]
