from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import func


@dataclass
class LabelFilter:
    """Filtres optionnels d'une liste d'étiquettes.

    Chaque critère renseigné devient un prédicat SQLAlchemy avec paramètre
    lié ; aucun fragment SQL n'est assemblé à la main.
    """
    blok: Optional[str] = None
    idlokasi: Optional[int] = None
    search: Optional[str] = None
    username: Optional[str] = None

    def predicates(self, label_expression, location_table, username_column=None) -> List:
        clauses = []
        if self.blok:
            # Blok stocké sans casse fixe, comme le compare le validateur
            clauses.append(func.upper(func.trim(location_table.c.Blok)) == self.blok.strip().upper())
        if self.idlokasi is not None:
            clauses.append(location_table.c.IdLokasi == self.idlokasi)
        if self.search:
            clauses.append(label_expression.contains(self.search, autoescape=True))
        if self.username and username_column is not None:
            clauses.append(username_column == self.username)
        return clauses

    def apply(self, stmt, label_expression, location_table, username_column=None):
        clauses = self.predicates(label_expression, location_table, username_column)
        if clauses:
            stmt = stmt.where(*clauses)
        return stmt
