"""Schema description given to the language model when translating questions to SQL.

Must stay in sync with the operational database and with sql_validator.ALLOWED_TABLES.
"""

from functools import lru_cache

SCHEMA_CONTEXT = """
# CNC Endmill Management Database Schema

## 1. tool_changes (tool change log)
Core table: every endmill replacement on a machine.
Columns:
- id: UUID (PK)
- equipment_id: UUID (-> equipment.id)
- equipment_number: INTEGER (machine number)
- model: TEXT (machine model: PA1, PA2, PS, B7, Q7)
- process: TEXT (process step name)
- t_number: INTEGER (tool position T1..T24)
- endmill_type_id: UUID (-> endmill_types.id)
- endmill_code: TEXT
- endmill_name: TEXT
- change_date: DATE
- change_reason: TEXT (see enums)
- tool_life: INTEGER
- changed_by: UUID (-> user_profiles.id)
- production_model: TEXT
- notes: TEXT
- created_at: TIMESTAMP
Use for: breakage analysis, replacement patterns, cost analysis.

## 2. equipment (CNC machines, ~800 units)
Columns: id UUID (PK), equipment_number INTEGER UNIQUE (1..800), location TEXT,
status TEXT, model_code TEXT, current_model TEXT, process TEXT,
tool_position_count INTEGER (default 21), last_maintenance DATE,
created_at TIMESTAMP, updated_at TIMESTAMP

## 3. endmill_types
Columns: id UUID (PK), code TEXT UNIQUE, category_id UUID (-> endmill_categories.id),
name TEXT, unit_cost NUMERIC, standard_life INTEGER, created_at TIMESTAMP, updated_at TIMESTAMP

## 4. endmill_categories
Columns: id UUID (PK), code TEXT, name_ko TEXT, name_vi TEXT, description TEXT

## 5. inventory (endmill stock)
Columns: id UUID (PK), endmill_type_id UUID, current_stock INTEGER, min_stock INTEGER,
max_stock INTEGER, status TEXT, location TEXT, last_updated TIMESTAMP

## 6. inventory_transactions (inbound/outbound)
Columns: id UUID (PK), inventory_id UUID, transaction_type TEXT ('inbound' | 'outbound'),
quantity INTEGER, unit_price NUMERIC, total_amount NUMERIC, equipment_id UUID,
t_number INTEGER, purpose TEXT, processed_by UUID, processed_at TIMESTAMP, notes TEXT

## 7. user_profiles
Columns: id UUID (PK), user_id UUID, employee_id TEXT, name TEXT, department TEXT,
position TEXT, shift TEXT ('A' | 'B' | 'C'), role_id UUID (-> user_roles.id), is_active BOOLEAN

## 8. cam_sheets (per-model tool specification)
Columns: id UUID (PK), model TEXT, process TEXT, cam_version TEXT, version_date DATE, created_by UUID

## 9. cam_sheet_endmills
Columns: id UUID (PK), cam_sheet_id UUID, t_number INTEGER, endmill_type_id UUID,
endmill_code TEXT, endmill_name TEXT, tool_life INTEGER, specifications TEXT

## 10. suppliers
Columns: id UUID (PK), code TEXT, name TEXT, contact_info JSONB, is_active BOOLEAN, quality_rating NUMERIC

## 11. endmill_supplier_prices
Columns: id UUID (PK), endmill_type_id UUID, supplier_id UUID, unit_price NUMERIC,
min_order_quantity INTEGER, lead_time_days INTEGER, is_preferred BOOLEAN, quality_rating INTEGER (1-10)

## 12. tool_positions (tool currently mounted at each position)
Columns: id UUID (PK), equipment_id UUID, equipment_number INTEGER, model TEXT,
t_number INTEGER (1..24), endmill_type_id UUID, endmill_code TEXT, endmill_name TEXT,
tool_life INTEGER, install_date DATE, created_at TIMESTAMP, updated_at TIMESTAMP

## 13. user_roles
Columns: id UUID (PK), type TEXT ('system_admin' | 'admin' | 'user'), permissions JSONB

# Relationships
- tool_changes.equipment_id -> equipment.id
- tool_changes.endmill_type_id -> endmill_types.id
- tool_changes.changed_by -> user_profiles.id
- tool_positions.equipment_id -> equipment.id
- tool_positions.endmill_type_id -> endmill_types.id
- endmill_types.category_id -> endmill_categories.id
- inventory.endmill_type_id -> endmill_types.id
- inventory_transactions.inventory_id -> inventory.id
- inventory_transactions.equipment_id -> equipment.id
- inventory_transactions.processed_by -> user_profiles.id

# Enum values (stored in Korean; match exactly)
- tool_changes.change_reason: '수명완료' (end of life), '파손' (breakage), '마모' (wear),
  '예방교체' (preventive), '모델변경' (model change), '기타' (other)
- equipment.location: 'A동', 'B동'
- equipment.status: '가동중' (running), '점검중' (inspection), '셋업중' (setup)
- inventory.status: 'sufficient', 'low', 'critical'

# Example queries

Q: Which model had the most breakages in the last month?
SELECT model, COUNT(*) AS damage_count FROM tool_changes
WHERE change_date >= NOW() - INTERVAL '1 month' AND change_reason = '파손'
GROUP BY model ORDER BY damage_count DESC LIMIT 1

Q: Which endmills are low on stock?
SELECT et.code AS endmill_code, et.name, i.current_stock, i.min_stock, i.status
FROM inventory i JOIN endmill_types et ON i.endmill_type_id = et.id
WHERE i.status IN ('low', 'critical') ORDER BY i.current_stock ASC

Q: Monthly tool change cost over the last 3 months?
SELECT TO_CHAR(tc.change_date, 'YYYY-MM') AS month, COUNT(*) AS change_count,
SUM(et.unit_cost) AS total_cost
FROM tool_changes tc JOIN endmill_types et ON tc.endmill_type_id = et.id
WHERE tc.change_date >= NOW() - INTERVAL '3 months'
GROUP BY TO_CHAR(tc.change_date, 'YYYY-MM') ORDER BY month DESC

# Notes
- Always filter tool_changes by date; it is the largest table.
- Use ILIKE for case-insensitive comparisons of codes, categories and models.
- Aggregates: COUNT, SUM, AVG, MAX, MIN. Use short table aliases in JOINs.
""".strip()


@lru_cache(maxsize=1)
def get_schema_context() -> str:
    """Schema context for SQL generation prompts. Memoized."""
    return SCHEMA_CONTEXT
