from sitemanager.models.user import User
from sitemanager.models.site import Site, Package, SiteStatus
from sitemanager.models.boq import BOQHeadline, BOQLineItem, WorkStatus
from sitemanager.models.material import (
    Material, MaterialReceipt, ComplianceDocument, MaterialType, DocumentType,
)
from sitemanager.models.checklist import (
    Checklist, ChecklistItem, ChecklistTemplate, ChecklistTemplateItem,
    BOQChecklist, BOQChecklistItem, BOQChecklistClearance,
)
from sitemanager.models.jmr import BOQJMR, JMRStatus
from sitemanager.models.supplier import Supplier
from sitemanager.models.master_material import MasterMaterial
from sitemanager.models.grn import (
    GRNInvoice, GRNInvoiceDC, GRNLineItem, GRNLineItemDocument, MaterialGRN, GRNComplianceDocument,
)
from sitemanager.models.payment import SupplierInvoicePayment, PaymentStatus
from sitemanager.models.expense import (
    LabourContractor, ManpowerCategory, Manpower, Equipment,
    ManpowerExpense, EquipmentExpense, OtherExpense,
)
from sitemanager.models.workstation import (
    MasterWorkstation, SiteWorkstation, WorkstationBOQProgress, WorkstationMaterialConsumption,
)

__all__ = [
    "User",
    "Site",
    "Package",
    "SiteStatus",
    "BOQHeadline",
    "BOQLineItem",
    "WorkStatus",
    "Material",
    "MaterialReceipt",
    "ComplianceDocument",
    "MaterialType",
    "DocumentType",
    "Checklist",
    "ChecklistItem",
    "ChecklistTemplate",
    "ChecklistTemplateItem",
    "BOQChecklist",
    "BOQChecklistItem",
    "BOQChecklistClearance",
    "BOQJMR",
    "JMRStatus",
    "Supplier",
    "MasterMaterial",
    "GRNInvoice",
    "GRNInvoiceDC",
    "GRNLineItem",
    "GRNLineItemDocument",
    "MaterialGRN",
    "GRNComplianceDocument",
    "SupplierInvoicePayment",
    "PaymentStatus",
    "LabourContractor",
    "ManpowerCategory",
    "Manpower",
    "Equipment",
    "ManpowerExpense",
    "EquipmentExpense",
    "OtherExpense",
    "MasterWorkstation",
    "SiteWorkstation",
    "WorkstationBOQProgress",
    "WorkstationMaterialConsumption",
]
