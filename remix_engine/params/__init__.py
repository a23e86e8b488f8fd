"""
Parameter schema, UI key normalisation and request resolution.
"""
from remix_engine.params.schema import PARAM_SCHEMA
from remix_engine.params.engine_params import to_engine_params
from remix_engine.params.resolve import (
    RemixParams,
    RemixTemplate,
    apply_template,
    resolve_effect,
    resolve_remix_params,
)

__all__ = [
    "PARAM_SCHEMA",
    "to_engine_params",
    "RemixParams",
    "RemixTemplate",
    "apply_template",
    "resolve_effect",
    "resolve_remix_params",
]
