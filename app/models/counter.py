from sqlmodel import Field, SQLModel


class Counter(SQLModel, table=True):
    __tablename__ = "counters"

    # "lost_item_id" / "found_item_id"
    name: str = Field(primary_key=True)
    seq: int = Field(default=0)
