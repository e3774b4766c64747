# Importing this package registers every built-in tool on tools.registry.registry.
from tools.approvals import list_pending_approvals, record_work_order_approval, set_line_approval  # noqa: F401
from tools.customers import create_customer, create_vehicle, find_customer_vehicle  # noqa: F401
from tools.fleet import find_or_create_fleet, find_or_create_fleet_program, generate_fleet_work_orders  # noqa: F401
from tools.invoices import email_invoice, generate_invoice_html  # noqa: F401
from tools.work_orders import add_work_order_line, attach_photo, create_custom_inspection, create_work_order  # noqa: F401
