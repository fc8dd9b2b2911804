"""
Error types for imageoptimize.

Every failure raised by the pipeline derives from ImageProcessingError so a
batch caller can catch per-image failures with one except clause.
"""


class ImageProcessingError(Exception):
    """Base class for all pipeline failures."""


class ParamsInvalid(ImageProcessingError):
    """Operation arguments have the wrong arity, type or range, or the format is unsupported."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(f"Process image fail, message:{message}")


class FetchError(ImageProcessingError):
    """HTTP fetch of a data reference failed."""


class FileReadError(ImageProcessingError):
    """Reading a file:// data reference failed."""


class Base64DecodeError(ImageProcessingError):
    """A data reference was neither a URL nor valid base64."""


class ImageDecodeError(ImageProcessingError):
    """Bytes are malformed for the resolved image format."""


class CodecError(ImageProcessingError):
    """
    An encoder, decoder or quantizer step failed.

    Attributes:
        category: Which codec step failed (e.g. 'png_quantize', 'webp_encode')
        source: The underlying exception
    """

    def __init__(self, category: str, source: BaseException):
        self.category = category
        self.source = source
        super().__init__(f"Handle image fail, category:{category}, message:{source}")
