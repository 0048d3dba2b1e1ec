from collections.abc import Iterable, Sequence

from app.classification.models import Verdict


class MetadataAggregator:
    """Computes per-field consensus over the verdicts of an admitted batch."""

    def aggregate(
        self,
        verdicts: Iterable[Verdict],
        field_names: Sequence[str],
    ) -> dict[str, str | None]:
        """Return each field's value when every image that reported it agrees.

        Blank and null values are ignored. A field with no observed value, or
        with two or more distinct values, resolves to None.
        """
        observed: dict[str, set[str]] = {name: set() for name in field_names}
        for verdict in verdicts:
            for name in field_names:
                value = verdict.extracted.get(name)
                if value is not None and value.strip():
                    observed[name].add(value.strip())
        return {
            name: next(iter(values)) if len(values) == 1 else None
            for name, values in observed.items()
        }
