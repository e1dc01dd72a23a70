from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from app.db.session import get_db
from app.models.destination import Destination
from app.models.package import Package
from app.schemas.catalog import DestinationOut, PackageOut

router = APIRouter(tags=["catalog"])


def _package_out(p: Package) -> PackageOut:
    return PackageOut(
        id=p.id,
        name=p.name,
        destinationId=p.destination_id,
        duration=p.duration,
        maxGroupSize=p.max_group_size,
        difficulty=p.difficulty,
        price=p.price,
        summary=p.summary or "",
        imageCover=p.image_cover or "",
        featured=bool(p.featured),
    )


@router.get("/destinations", response_model=list[DestinationOut])
def list_destinations(db: Session = Depends(get_db)):
    items = db.query(Destination).order_by(Destination.name.asc()).all()
    return [
        DestinationOut(id=d.id, name=d.name, country=d.country or "", summary=d.summary or "", imageCover=d.image_cover or "")
        for d in items
    ]


@router.get("/packages", response_model=list[PackageOut])
def list_packages(destinationId: str | None = None, featured: bool | None = None, db: Session = Depends(get_db)):
    query = db.query(Package)
    if destinationId:
        query = query.filter(Package.destination_id == destinationId)
    if featured is not None:
        query = query.filter(Package.featured == featured)
    return [_package_out(p) for p in query.order_by(Package.name.asc()).all()]


@router.get("/packages/{package_id}", response_model=PackageOut)
def get_package(package_id: str, db: Session = Depends(get_db)):
    p = db.get(Package, package_id)
    if not p:
        raise HTTPException(status_code=404, detail="No package found with that ID")
    return _package_out(p)
