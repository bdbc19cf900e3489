from sqlalchemy.orm import Session

from modelpass.models.resource import Resource
from modelpass.schemas.plan import ResourceCreate


class ResourceRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, resource_id: str) -> Resource | None:
        return self.db.query(Resource).filter(Resource.id == resource_id).first()

    def get_by_owner_id(self, owner_id: str) -> list[Resource]:
        return self.db.query(Resource).filter(Resource.owner_id == owner_id).all()

    def create(self, data: ResourceCreate) -> Resource:
        resource = Resource(owner_id=data.owner_id, name=data.name)
        if data.id is not None:
            resource.id = data.id  # type: ignore[assignment]
        self.db.add(resource)
        self.db.commit()
        self.db.refresh(resource)
        return resource
