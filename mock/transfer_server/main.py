from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from typing import Dict, Optional
import uuid

app = FastAPI(title="Mock Transfer Provider", version="1.0.0")

# transfer_id -> transfer record
TRANSFERS: Dict[str, dict] = {}
AUTHORIZATIONS: Dict[str, dict] = {}

# Account ids that exercise the decline and return paths
DECLINED_ACCOUNTS = {"acct-nsf": ("NSF", "Insufficient funds"), "acct-closed": ("ACCOUNT_CLOSED", "Account closed")}


class AuthorizationRequest(BaseModel):
    access_token: str
    account_id: str
    amount: str
    type: str = "debit"


class CreateRequest(BaseModel):
    access_token: str
    account_id: str
    authorization_id: str
    amount: str
    description: str = ""
    metadata: Dict[str, str] = {}


class GetRequest(BaseModel):
    transfer_id: str


class SimulateRequest(BaseModel):
    status: str
    ach_return_code: Optional[str] = None


@app.get("/health")
def health(): return {"status": "ok"}


@app.post("/transfer/authorization/create")
def create_authorization(body: AuthorizationRequest):
    authorization_id = f"auth-{uuid.uuid4()}"
    declined = DECLINED_ACCOUNTS.get(body.account_id)
    authorization = {
        "id": authorization_id,
        "decision": "declined" if declined else "approved",
        "decision_rationale": {"code": declined[0], "description": declined[1]} if declined else None,
    }
    AUTHORIZATIONS[authorization_id] = authorization
    return {"authorization": authorization}


@app.post("/transfer/create")
def create_transfer(body: CreateRequest):
    authorization = AUTHORIZATIONS.get(body.authorization_id)
    if authorization is None or authorization["decision"] != "approved":
        return JSONResponse(status_code=400, content={"error_code": "INVALID_AUTHORIZATION", "error_message": "authorization not approved"})
    transfer_id = f"tr-{uuid.uuid4()}"
    TRANSFERS[transfer_id] = {"id": transfer_id, "status": "pending", "amount": body.amount, "failure_reason": None}
    return {"transfer": TRANSFERS[transfer_id]}


@app.post("/transfer/get")
def get_transfer(body: GetRequest):
    transfer = TRANSFERS.get(body.transfer_id)
    if transfer is None:
        raise HTTPException(status_code=404, detail="transfer not found")
    return {"transfer": transfer}


@app.post("/simulate/{transfer_id}")
def simulate(transfer_id: str, body: SimulateRequest):
    """Move a transfer to a new status, as the rails would"""
    transfer = TRANSFERS.get(transfer_id)
    if transfer is None:
        raise HTTPException(status_code=404, detail="transfer not found")
    transfer["status"] = body.status
    if body.ach_return_code:
        transfer["failure_reason"] = {"ach_return_code": body.ach_return_code, "description": f"Returned: {body.ach_return_code}"}
    return {"transfer": transfer}
