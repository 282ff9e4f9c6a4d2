"""
API tests covering submission, approval, process import and the recycle bin.
"""

from datetime import date

from app.models.process import Process
from app.models.recycle_bin import RecycleBinEntry
from app.models.timesheet import TimesheetRecord
from app.services.import_service import parse_workbook

XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


class TestTimesheetApi:

    def test_submit_and_list(self, client, employee, supervisor, section_chief, production_process,
                             auth_headers):
        response = client.post("/api/v1/timesheets/", json={
            "work_date": "2024-03-01",
            "shift_type": "白班",
            "supervisor_id": supervisor.id,
            "section_chief_id": section_chief.id,
            "items": [{"process_id": production_process.id, "quantity": 10}],
        }, headers=auth_headers(employee))

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "pending"
        assert body["user_name"] == "王五"
        assert body["items"][0]["amount"] == 25.0

        mine = client.get("/api/v1/timesheets/mine", params={"status": "pending"},
                          headers=auth_headers(employee))

        assert [record["id"] for record in mine.json()] == [body["id"]]

    def test_fractional_production_quantity_is_rejected(self, client, employee, supervisor, section_chief,
                                                       production_process, auth_headers):
        response = client.post("/api/v1/timesheets/", json={
            "work_date": "2024-03-01",
            "supervisor_id": supervisor.id,
            "section_chief_id": section_chief.id,
            "items": [{"process_id": production_process.id, "quantity": 1.5}],
        }, headers=auth_headers(employee))

        assert response.status_code == 400
        assert response.json()["detail"] == "第1条记录：生产工时数量必须为整数"

    def test_delete_moves_record_to_recycle_bin(self, db, client, make_record, employee, auth_headers):
        record = make_record()

        response = client.delete(f"/api/v1/timesheets/{record.id}", headers=auth_headers(employee))

        assert response.status_code == 200
        assert response.json()["entry_id"] is not None
        db.expire_all()
        assert db.query(TimesheetRecord).count() == 0
        assert db.query(RecycleBinEntry).count() == 1

    def test_delete_missing_record(self, client, employee, auth_headers):
        response = client.delete("/api/v1/timesheets/9999", headers=auth_headers(employee))

        assert response.status_code == 404


class TestApprovalApi:

    def test_pending_and_approve(self, db, client, make_record, supervisor, auth_headers):
        record = make_record()
        headers = auth_headers(supervisor)

        pending = client.get("/api/v1/approvals/supervisor/pending", headers=headers)

        assert pending.status_code == 200
        assert pending.json()[0]["total_items"] == 1

        response = client.post(
            f"/api/v1/approvals/supervisor/records/{record.id}/approve",
            json={"comment": "ok"}, headers=headers
        )

        assert response.status_code == 200
        assert response.json() == {"status": "approved", "record_ids": [record.id]}

        again = client.post(
            f"/api/v1/approvals/supervisor/records/{record.id}/approve", json={}, headers=headers
        )
        assert again.status_code == 409

        history = client.get(f"/api/v1/approvals/records/{record.id}/history", headers=headers)
        assert history.json()[0]["approver_name"] == "张班长"

    def test_employee_cannot_approve(self, client, employee, auth_headers):
        response = client.get("/api/v1/approvals/supervisor/pending", headers=auth_headers(employee))

        assert response.status_code == 403

    def test_unsaved_edit_prompts_then_saves(self, db, client, make_record, supervisor, auth_headers):
        record = make_record()
        item_id = record.items[0].id
        headers = auth_headers(supervisor)
        url = "/api/v1/approvals/supervisor/groups/approve"
        body = {"record_ids": [record.id], "pending_edit": {"item_id": item_id, "quantity": 12}}

        conflict = client.post(url, json=body, headers=headers)

        assert conflict.status_code == 409
        detail = conflict.json()["detail"]
        assert detail["item_id"] == item_id
        assert detail["original_quantity"] == 10
        assert detail["edit_quantity"] == 12
        assert detail["pending_action"] == "grouped"

        response = client.post(url, json={**body, "edit_resolution": "save"}, headers=headers)

        assert response.status_code == 200
        assert response.json()["status"] == "approved"
        modifications = client.get(f"/api/v1/approvals/records/{record.id}/modifications", headers=headers)
        assert modifications.json()[0]["new_quantity"] == 12

    def test_batch_approve_reports_failures(self, client, make_record, employee, supervisor, auth_headers):
        make_record()

        response = client.post("/api/v1/approvals/supervisor/batch-approve", json={
            "group_keys": [f"{employee.id}_2024-03-01", "nope"],
        }, headers=auth_headers(supervisor))

        assert response.status_code == 200
        assert response.json()["success_count"] == 1
        assert response.json()["failures"][0]["key"] == "nope"

    def test_quantity_validation(self, client, make_record, supervisor, auth_headers):
        record = make_record()

        response = client.patch(
            f"/api/v1/approvals/items/{record.items[0].id}/quantity",
            json={"quantity": 0}, headers=auth_headers(supervisor)
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "数量必须大于0"


class TestProcessApi:

    def test_import(self, db, client, admin, company, build_workbook, auth_headers):
        content = build_workbook([["测试公司", "二号线", "生产工时", "产品C", "打磨", 0.8, "2024-05"]])

        response = client.post(
            "/api/v1/processes/import",
            files={"file": ("工序.xlsx", content, XLSX)},
            headers=auth_headers(admin)
        )

        assert response.status_code == 200
        assert response.json()["success_count"] == 1
        db.expire_all()
        assert db.query(Process).filter(Process.product_name == "产品C").count() == 1

    def test_create_duplicate(self, client, admin, company, production_process, auth_headers):
        response = client.post("/api/v1/processes/", json={
            "company_id": company.id,
            "production_line": "一号线",
            "production_category": "生产工时",
            "product_name": "产品A",
            "product_process": "组装",
        }, headers=auth_headers(admin))

        assert response.status_code == 400
        assert response.json()["detail"] == "该工序已存在，请检查输入信息！"

    def test_download_template(self, client, admin, auth_headers):
        response = client.get("/api/v1/processes/import/template", headers=auth_headers(admin))

        assert response.status_code == 200
        assert response.headers["content-type"] == XLSX
        assert "filename*=UTF-8''" in response.headers["content-disposition"]
        rows = parse_workbook(response.content)
        assert rows[0]["公司名称"] == "测试公司"
        assert rows[0]["产品工序"] == "示例工序"

    def test_employee_has_no_access(self, client, employee, auth_headers):
        assert client.get("/api/v1/processes/", headers=auth_headers(employee)).status_code == 403


class TestRecycleBinApi:

    def test_list_restore_and_cleanup(self, db, client, make_record, admin, auth_headers):
        record = make_record()
        headers = auth_headers(admin)
        client.delete(f"/api/v1/timesheets/{record.id}", headers=headers)

        listing = client.get("/api/v1/recycle-bin/", params={"search": "王五"}, headers=headers)

        assert listing.status_code == 200
        assert listing.json()["total"] == 1
        entry = listing.json()["items"][0]
        assert entry["item_type"] == "timesheet_record"
        assert entry["deleted_by_name"] == "管理员甲"

        restored = client.post(f"/api/v1/recycle-bin/{entry['id']}/restore", headers=headers)

        assert restored.status_code == 200
        assert restored.json()["entry_removal"] == "deleted"
        db.expire_all()
        assert db.query(TimesheetRecord).filter(TimesheetRecord.id == record.id).count() == 1

        cleanup = client.post("/api/v1/recycle-bin/cleanup", headers=headers)
        assert cleanup.json() == {"deleted_count": 0}

    def test_restore_reports_item_id_for_each_type(self, db, client, make_record, admin, company, auth_headers):
        headers = auth_headers(admin)
        record = make_record()
        record_id = record.id
        second = make_record(work_date=date(2024, 3, 2))
        item_id = second.items[0].id
        spare = Process(company_id=company.id, production_line="三号线", production_category="非生产工时",
                        product_name="产品D", product_process="清洁", is_active=True)
        db.add(spare)
        db.commit()
        process_id = spare.id

        record_entry = client.delete(f"/api/v1/timesheets/{record_id}", headers=headers).json()["entry_id"]
        item_entry = client.delete(f"/api/v1/timesheets/items/{item_id}", headers=headers).json()["entry_id"]
        process_entry = client.delete(f"/api/v1/processes/{process_id}", headers=headers).json()["entry_id"]

        for entry_id, item_type, expected_id in (
            (record_entry, "timesheet_record", record_id),
            (item_entry, "timesheet_record_item", item_id),
            (process_entry, "process", process_id),
        ):
            response = client.post(f"/api/v1/recycle-bin/{entry_id}/restore", headers=headers)

            assert response.status_code == 200
            assert response.json()["item_type"] == item_type
            assert response.json()["item_id"] == expected_id
            assert response.json()["entry_removal"] == "deleted"

        db.expire_all()
        assert db.query(TimesheetRecord).count() == 2
        assert db.query(Process).filter(Process.id == process_id).one().is_active
        assert client.post(f"/api/v1/recycle-bin/{record_entry}/restore", headers=headers).status_code == 404

    def test_bad_page_size(self, client, admin, auth_headers):
        response = client.get("/api/v1/recycle-bin/", params={"page_size": 500}, headers=auth_headers(admin))

        assert response.status_code == 422

    def test_restore_missing_entry(self, client, admin, auth_headers):
        response = client.post("/api/v1/recycle-bin/9999/restore", headers=auth_headers(admin))

        assert response.status_code == 404


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["missing_settings"] == []
