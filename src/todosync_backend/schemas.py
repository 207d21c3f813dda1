from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class WireModel(BaseModel):
    # Wire keys are camelCase (clientGroupID, lastMutationIDChanges); python names stay snake_case.
    model_config = ConfigDict(populate_by_name=True)


class PushMutation(WireModel):
    id: int = Field(ge=1)
    client_id: str = Field(alias="clientID", min_length=1, max_length=36)
    name: str = Field(min_length=1, max_length=64)
    args: Any = None


class PushRequest(WireModel):
    client_group_id: str = Field(alias="clientGroupID", min_length=1, max_length=36)
    mutations: list[PushMutation] = Field(default_factory=list)


class PushResponse(WireModel):
    pass


class PullRequest(WireModel):
    client_group_id: str = Field(alias="clientGroupID", min_length=1, max_length=36)
    # Opaque to clients; null or unknown values force a full reset.
    cookie: Any = None


class PatchPut(WireModel):
    op: Literal["put"] = "put"
    key: str
    value: dict[str, Any]


class PatchDel(WireModel):
    op: Literal["del"] = "del"
    key: str


class PatchClear(WireModel):
    op: Literal["clear"] = "clear"


PatchOperation = Annotated[Union[PatchPut, PatchDel, PatchClear], Field(discriminator="op")]


class PullResponse(WireModel):
    cookie: int
    last_mutation_id_changes: dict[str, int] = Field(
        default_factory=dict, alias="lastMutationIDChanges"
    )
    patch: list[PatchOperation] = Field(default_factory=list)
