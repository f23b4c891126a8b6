from typing import Any, List, Sequence

from queryproc.pipeline.contracts import ColumnDescriptor, ResultData, ResultEnvelope
from queryproc.query.compiled import QueryWarning


class ResultAssembler:
    """Packs normalized columns and raw rows into the response envelope. Values pass through unchanged."""

    def assemble(
        self,
        rows: List[List[Any]],
        cols: List[ColumnDescriptor],
        warnings: Sequence[QueryWarning] = (),
    ) -> ResultEnvelope:
        return ResultEnvelope(
            status="completed",
            row_count=len(rows),
            data=ResultData(columns=[c.name for c in cols], cols=cols, rows=rows),
            warnings=list(warnings),
        )
