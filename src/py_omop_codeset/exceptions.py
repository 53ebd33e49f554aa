# Copyright (c) 2025-2026 Gowtham Adamane Rao. All Rights Reserved.
#
# Licensed under the Prosperity Public License 3.0.0 (the "License").
# You may not use this file except in compliance with the License.
# You may obtain a copy of the License in the LICENSE file at the root
# of this repository, or at: https://prosperitylicense.com/versions/3.0.0
#
# Commercial use beyond a 30-day trial requires a separate license.
"""
Error taxonomy shared by the query services, the stores and the HTTP surface.
"""


class CodeSetError(Exception):
    """Base class for all errors raised by py_omop_codeset."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidInputError(CodeSetError):
    """A request field is missing or malformed. Raised before any store access."""
    status_code = 400


class NotFoundError(CodeSetError):
    """A referenced concept id does not exist in the graph."""
    status_code = 404


class UpstreamFailureError(CodeSetError):
    """The graph store or an external service is unreachable or returned an error."""
    status_code = 500


class InternalError(CodeSetError):
    """An unexpected failure inside the service."""
    status_code = 500
