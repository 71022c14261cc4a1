from decimal import Decimal
from functools import partial
from typing import List, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, FastAPI, File, HTTPException, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict, Field

from auth import AuthGate
from config import settings
from currency import CURRENCIES
from database import KeyValueStorage, create_storage
from documents import LogoLoader, export_filename, fetch_logo, render_quotation_pdf
from exceptions import DocumentRenderError, ImageUploadError, ImageValidationError, StorageError
from logger import get_logger, setup_logging
from quotation import (
    DraftError,
    adjust_quantity,
    build_saved_quotation,
    clamp_discount,
    compute_totals,
    load_from_template,
    merge_or_increment,
    remove_item,
    set_quantity,
)
from schemas import (
    UNIT_LABELS,
    CompanyInfo,
    CompanyInfoUpdate,
    Currency,
    Product,
    ProductIn,
    ProductUpdate,
    QuotationDraft,
    QuotationItem,
    QuotationTemplate,
    SavedQuotation,
    TemplateIn,
    Totals,
)
from stores import (
    ArchiveStore,
    CatalogStore,
    CategoryStore,
    CompanyStore,
    CurrencyStore,
    TemplateStore,
)
from uploads import ImageUploader, SupabaseImageUploader, validate_image

setup_logging(settings.log_level)
logger = get_logger(__name__)

storage: KeyValueStorage = create_storage(settings)
_uploader: Optional[ImageUploader] = None


# -----------------------------
# Dependencies
# -----------------------------

def get_storage() -> KeyValueStorage:
    return storage


def get_uploader() -> Optional[ImageUploader]:
    global _uploader
    if _uploader is None and settings.uploads_enabled:
        _uploader = SupabaseImageUploader.from_settings(settings)
    return _uploader


def get_logo_loader() -> LogoLoader:
    return partial(fetch_logo, timeout=settings.remote_image_timeout)


def require_auth(storage: KeyValueStorage = Depends(get_storage)) -> str:
    user = AuthGate(storage).current_user()
    if user is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user


def require_uploader(uploader: Optional[ImageUploader] = Depends(get_uploader)) -> ImageUploader:
    if uploader is None:
        raise HTTPException(status_code=503, detail="Image storage is not configured")
    return uploader


# -----------------------------
# Pydantic Schemas (API layer)
# -----------------------------
class LoginIn(BaseModel):
    username: str
    password: str


class SessionOut(BaseModel):
    authenticated: bool
    username: Optional[str] = None


class UnitTypeOut(BaseModel):
    value: str
    label: str


class CurrencyIn(BaseModel):
    code: str


class CategoryIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=100)


class CategoryRemoved(BaseModel):
    removed: str
    products_cleared: int


class ImageOut(BaseModel):
    url: str


class AddItemsRequest(BaseModel):
    items: List[QuotationItem] = []
    product_ids: List[str]


class ItemEditRequest(BaseModel):
    items: List[QuotationItem] = []
    product_id: str


class AdjustQuantityRequest(ItemEditRequest):
    delta: int


class SetQuantityRequest(ItemEditRequest):
    quantity: int


class PricingRequest(BaseModel):
    items: List[QuotationItem] = []
    discount: Decimal = Decimal(0)


class QuotationRequest(BaseModel):
    customer_name: str = ""
    items: List[QuotationItem] = []
    discount: Decimal = Decimal(0)


class LoadedTemplate(BaseModel):
    template_id: str
    discount: Decimal
    items: List[QuotationItem]


# -----------------------------
# FastAPI App
# -----------------------------
app = FastAPI(title="QuotePro API - products, quotations and archive")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

api = APIRouter(dependencies=[Depends(require_auth)])


@app.exception_handler(StorageError)
def storage_error_handler(request: Request, exc: StorageError):
    logger.error("Storage failure on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.get("/")
def root():
    return {"message": "QuotePro Backend Running", "storage": settings.storage_backend}


@app.get("/health")
def health(storage: KeyValueStorage = Depends(get_storage)):
    if not storage.ping():
        raise HTTPException(status_code=500, detail="Storage unavailable")
    return {"status": "ok"}


# -----------------------------
# Helpers
# -----------------------------

def pdf_response(pdf: bytes, customer_name: str) -> Response:
    filename = export_filename(customer_name)
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(filename)}"},
    )


def render_or_500(quotation: QuotationDraft, company: CompanyInfo, currency: str, loader: LogoLoader) -> bytes:
    try:
        return render_quotation_pdf(quotation, company, currency, logo_loader=loader)
    except DocumentRenderError as e:
        logger.error("PDF export failed for %s: %s", quotation.customer_name, e)
        raise HTTPException(status_code=500, detail=str(e))


def resolve_items(items: List[QuotationItem], storage: KeyValueStorage) -> List[QuotationItem]:
    # Line snapshots are re-read from the catalog; client-sent product fields are ignored
    catalog = CatalogStore(storage)
    resolved = []
    for item in items:
        product = catalog.get(item.product.id)
        if not product:
            raise HTTPException(status_code=400, detail=f"Product {item.product.id} not found")
        resolved.append(QuotationItem(product=product, quantity=item.quantity))
    return resolved


def build_or_400(payload: QuotationRequest, storage: KeyValueStorage) -> QuotationDraft:
    items = resolve_items(payload.items, storage)
    try:
        return build_saved_quotation(
            payload.customer_name,
            items,
            clamp_discount(payload.discount),
            CurrencyStore(storage).get(),
            CompanyStore(storage).get(),
        )
    except DraftError as e:
        raise HTTPException(status_code=400, detail=str(e))


async def read_image(file: UploadFile, max_bytes: Optional[int]) -> bytes:
    data = await file.read()
    try:
        validate_image(file.content_type, len(data), max_bytes)
    except ImageValidationError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return data


def upload_or_502(uploader: ImageUploader, data: bytes, file: UploadFile) -> str:
    try:
        return uploader.upload(data, file.filename, file.content_type)
    except ImageUploadError as e:
        raise HTTPException(status_code=502, detail=str(e))


# -----------------------------
# Authentication
# -----------------------------
@app.post("/auth/login", response_model=SessionOut)
def login(payload: LoginIn, storage: KeyValueStorage = Depends(get_storage)):
    if not AuthGate(storage).login(payload.username, payload.password):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return SessionOut(authenticated=True, username=payload.username)


@app.post("/auth/logout", response_model=SessionOut)
def logout(storage: KeyValueStorage = Depends(get_storage)):
    AuthGate(storage).logout()
    return SessionOut(authenticated=False)


@app.get("/auth/session", response_model=SessionOut)
def session(storage: KeyValueStorage = Depends(get_storage)):
    user = AuthGate(storage).current_user()
    return SessionOut(authenticated=user is not None, username=user)


# -----------------------------
# Reference data & settings
# -----------------------------
@api.get("/unit-types", response_model=List[UnitTypeOut])
def list_unit_types():
    return [UnitTypeOut(value=unit.value, label=label) for unit, label in UNIT_LABELS.items()]


@api.get("/currencies", response_model=List[Currency])
def list_currencies():
    return CURRENCIES


@api.get("/settings/currency", response_model=CurrencyIn)
def get_currency_setting(storage: KeyValueStorage = Depends(get_storage)):
    return CurrencyIn(code=CurrencyStore(storage).get())


@api.put("/settings/currency", response_model=CurrencyIn)
def set_currency_setting(payload: CurrencyIn, storage: KeyValueStorage = Depends(get_storage)):
    store = CurrencyStore(storage)
    if not store.set(payload.code):
        raise HTTPException(status_code=400, detail=f"Unsupported currency {payload.code}")
    return CurrencyIn(code=store.get())


# -----------------------------
# Categories
# -----------------------------
@api.get("/categories", response_model=List[str])
def list_categories(storage: KeyValueStorage = Depends(get_storage)):
    return CategoryStore(storage).list()


@api.post("/categories", response_model=CategoryIn)
def create_category(payload: CategoryIn, storage: KeyValueStorage = Depends(get_storage)):
    if not CategoryStore(storage).add(payload.name):
        raise HTTPException(status_code=400, detail="Category already exists")
    return payload


@api.delete("/categories/{label:path}", response_model=CategoryRemoved)
def delete_category(label: str, storage: KeyValueStorage = Depends(get_storage)):
    CategoryStore(storage).remove(label)
    cleared = CatalogStore(storage).clear_category(label)
    logger.info("Removed category %r (cleared from %d products)", label, cleared)
    return CategoryRemoved(removed=label, products_cleared=cleared)


# -----------------------------
# Products
# -----------------------------
@api.get("/products", response_model=List[Product])
def list_products(
    q: Optional[str] = Query(None, description="Search by name"),
    category: Optional[str] = None,
    storage: KeyValueStorage = Depends(get_storage),
):
    return CatalogStore(storage).search(q, category)


@api.get("/products/{product_id}", response_model=Product)
def get_product(product_id: str, storage: KeyValueStorage = Depends(get_storage)):
    product = CatalogStore(storage).get(product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@api.post("/products", response_model=Product)
def create_product(payload: ProductIn, storage: KeyValueStorage = Depends(get_storage)):
    return CatalogStore(storage).add(payload)


@api.patch("/products/{product_id}", response_model=Product)
def update_product(product_id: str, payload: ProductUpdate, storage: KeyValueStorage = Depends(get_storage)):
    updated = CatalogStore(storage).update(product_id, payload)
    if not updated:
        raise HTTPException(status_code=404, detail="Product not found")
    return updated


@api.delete("/products/{product_id}")
def delete_product(
    product_id: str,
    storage: KeyValueStorage = Depends(get_storage),
    uploader: Optional[ImageUploader] = Depends(get_uploader),
):
    catalog = CatalogStore(storage)
    product = catalog.get(product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    catalog.delete(product_id)
    if product.image_url and uploader is not None:
        uploader.delete(product.image_url)
    return {"message": "deleted"}


@api.post("/products/{product_id}/image", response_model=Product)
async def upload_product_image(
    product_id: str,
    file: UploadFile = File(...),
    storage: KeyValueStorage = Depends(get_storage),
    uploader: ImageUploader = Depends(require_uploader),
):
    catalog = CatalogStore(storage)
    if not catalog.get(product_id):
        raise HTTPException(status_code=404, detail="Product not found")
    data = await read_image(file, settings.max_product_image_bytes)
    url = upload_or_502(uploader, data, file)
    return catalog.update(product_id, ProductUpdate(image_url=url))


# -----------------------------
# Company profile
# -----------------------------
@api.get("/company", response_model=CompanyInfo)
def get_company(storage: KeyValueStorage = Depends(get_storage)):
    return CompanyStore(storage).get()


@api.patch("/company", response_model=CompanyInfo)
def update_company(payload: CompanyInfoUpdate, storage: KeyValueStorage = Depends(get_storage)):
    return CompanyStore(storage).update(payload)


@api.post("/company/logo", response_model=CompanyInfo)
async def upload_company_logo(
    file: UploadFile = File(...),
    storage: KeyValueStorage = Depends(get_storage),
    uploader: ImageUploader = Depends(require_uploader),
):
    data = await read_image(file, None)
    url = upload_or_502(uploader, data, file)
    return CompanyStore(storage).update(CompanyInfoUpdate(logo=url))


# -----------------------------
# Templates
# -----------------------------
@api.get("/templates", response_model=List[QuotationTemplate])
def list_templates(storage: KeyValueStorage = Depends(get_storage)):
    return TemplateStore(storage).list()


@api.post("/templates", response_model=QuotationTemplate)
def create_template(payload: TemplateIn, storage: KeyValueStorage = Depends(get_storage)):
    return TemplateStore(storage).save(payload.name, payload.discount, payload.items)


@api.get("/templates/{template_id}", response_model=QuotationTemplate)
def get_template(template_id: str, storage: KeyValueStorage = Depends(get_storage)):
    template = TemplateStore(storage).get(template_id)
    if not template:
        raise HTTPException(status_code=404, detail="Template not found")
    return template


@api.get("/templates/{template_id}/items", response_model=LoadedTemplate)
def load_template(template_id: str, storage: KeyValueStorage = Depends(get_storage)):
    template = get_template(template_id, storage)
    items = load_from_template(template, CatalogStore(storage).list())
    return LoadedTemplate(template_id=template.id, discount=template.discount, items=items)


@api.delete("/templates/{template_id}")
def delete_template(template_id: str, storage: KeyValueStorage = Depends(get_storage)):
    if not TemplateStore(storage).delete(template_id):
        raise HTTPException(status_code=404, detail="Template not found")
    return {"message": "deleted"}


# -----------------------------
# Quotation builder
# -----------------------------
@api.post("/quotations/items/add", response_model=List[QuotationItem])
def add_items(payload: AddItemsRequest, storage: KeyValueStorage = Depends(get_storage)):
    catalog = CatalogStore(storage)
    products = []
    for product_id in payload.product_ids:
        product = catalog.get(product_id)
        if not product:
            raise HTTPException(status_code=400, detail=f"Product {product_id} not found")
        products.append(product)
    return merge_or_increment(payload.items, products)


@api.post("/quotations/items/adjust", response_model=List[QuotationItem])
def adjust_item(payload: AdjustQuantityRequest):
    return adjust_quantity(payload.items, payload.product_id, payload.delta)


@api.post("/quotations/items/quantity", response_model=List[QuotationItem])
def set_item_quantity(payload: SetQuantityRequest):
    return set_quantity(payload.items, payload.product_id, payload.quantity)


@api.post("/quotations/items/remove", response_model=List[QuotationItem])
def remove_line(payload: ItemEditRequest):
    return remove_item(payload.items, payload.product_id)


@api.post("/quotations/pricing", response_model=Totals)
def quotation_pricing(payload: PricingRequest):
    return compute_totals(payload.items, clamp_discount(payload.discount))


@api.post("/quotations/export")
def export_draft(
    payload: QuotationRequest,
    storage: KeyValueStorage = Depends(get_storage),
    loader: LogoLoader = Depends(get_logo_loader),
):
    draft = build_or_400(payload, storage)
    pdf = render_or_500(draft, draft.company_info, draft.currency, loader)
    return pdf_response(pdf, draft.customer_name)


# -----------------------------
# Archive
# -----------------------------
@api.get("/quotations", response_model=List[SavedQuotation])
def list_quotations(
    limit: int = Query(50, ge=0),
    offset: int = Query(0, ge=0),
    storage: KeyValueStorage = Depends(get_storage),
):
    return ArchiveStore(storage).list()[offset:offset + limit]


@api.post("/quotations", response_model=SavedQuotation)
def save_quotation(payload: QuotationRequest, storage: KeyValueStorage = Depends(get_storage)):
    return ArchiveStore(storage).save(build_or_400(payload, storage))


@api.get("/quotations/{quotation_id}", response_model=SavedQuotation)
def get_quotation(quotation_id: str, storage: KeyValueStorage = Depends(get_storage)):
    saved = ArchiveStore(storage).get(quotation_id)
    if not saved:
        raise HTTPException(status_code=404, detail="Quotation not found")
    return saved


@api.get("/quotations/{quotation_id}/pdf")
def quotation_pdf(
    quotation_id: str,
    storage: KeyValueStorage = Depends(get_storage),
    loader: LogoLoader = Depends(get_logo_loader),
):
    saved = get_quotation(quotation_id, storage)
    company = saved.company_info or CompanyStore(storage).get()
    pdf = render_or_500(saved, company, saved.currency, loader)
    return pdf_response(pdf, saved.customer_name)


@api.delete("/quotations/{quotation_id}")
def delete_quotation(quotation_id: str, storage: KeyValueStorage = Depends(get_storage)):
    if not ArchiveStore(storage).delete(quotation_id):
        raise HTTPException(status_code=404, detail="Quotation not found")
    return {"message": "deleted"}


app.include_router(api)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.port)
