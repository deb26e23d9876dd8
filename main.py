# File: main.py
# 功能：Semillita 情绪日记服务的主应用入口
# 包含：FastAPI 应用、家长同意拦截、用户与植物、日记、成就、奖励兑换、主持人面板等API

import os
import json
import logging
import mimetypes
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Depends, Header, Form, File, UploadFile, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from jose import jwt, JWTError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from database_models import (
    init_db, get_db, SessionLocal, utc_now,
    User, Plant, Emotion, JournalEntry, Achievement, UserAchievement, Reward, UserReward, Notification, Seed,
)
from database_models.user import FACILITATOR_ROLES
from database_models.journal import JOURNAL_ENTRY_POINTS
from database_models.schemas import (
    CreateUserRequest, LoginRequest, VerifyConsentRequest, ResendConsentEmailRequest,
    DeleteAccountRequest, DeleteAccountResponse, CreatePlantRequest, UpdatePlantStatusRequest,
    CreateNotificationRequest, PurchaseRewardRequest,
)
from services.errors import ServerError
from services.consent_gate import ConsentDecision, ConsentOutcome, check_consent, is_mutating_method
from services.achievement_service import (
    evaluate_and_award_achievements, achievements_with_status, get_active_plant, get_journal_entries_count,
)
from services.points_ledger import credit_points, purchase_reward, PurchaseError
from services.catalog_service import ensure_default_data
from services.media_service import media_service
from services.media_cleanup import cleanup_unreferenced_media
from services.account_service import (
    get_user, get_user_by_alias, create_user, update_user_consent, delete_user_account,
    get_all_children, count_journal_entries_by_user,
)

from dotenv import load_dotenv
load_dotenv()

# ==================== JWT 认证 ====================
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "your-fallback-dev-secret")
JWT_ALGORITHM = "HS256"
JWT_EXPIRE_MINUTES = int(os.getenv("JWT_EXPIRE_MINUTES", str(60 * 24 * 7)))  # 7天

# ==================== 家长同意配置 ====================
CONSENT_VERIFICATION_CODE = os.getenv("CONSENT_VERIFICATION_CODE", "APPROVED")

# ==================== 日志 ====================
for h in logging.root.handlers[:]:
    logging.root.removeHandler(h)
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)

# ==================== 环境变量检查 ====================
if not os.getenv("JWT_SECRET_KEY"):
    logger.warning("⚠️ 未设置 JWT_SECRET_KEY，使用开发环境默认密钥")


def api_error(status_code: int, message: str, code: str, **extra) -> HTTPException:
    """统一错误格式：{"detail": {"message", "code", ...}}"""
    detail = {"message": message, "code": code}
    detail.update(extra)
    return HTTPException(status_code=status_code, detail=detail)


# ==================== 家长同意拦截 ====================
def _to_user_id(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


async def _read_payload(request: Request) -> Dict[str, Any]:
    """读取请求体（JSON 或表单），无法解析时返回空字典"""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith(("multipart/form-data", "application/x-www-form-urlencoded")):
        form = await request.form()
        return {key: value for key, value in form.items() if isinstance(value, str)}
    body = await request.body()
    if not body:
        return {}
    try:
        payload = json.loads(body)
    except (ValueError, UnicodeDecodeError):
        return {}
    return payload if isinstance(payload, dict) else {}


def enforce_consent(decision: ConsentDecision) -> None:
    """把同意检查结果转换为HTTP错误"""
    if decision.outcome == ConsentOutcome.USER_NOT_FOUND:
        raise api_error(404, decision.message, decision.code)
    if decision.outcome == ConsentOutcome.CONSENT_REQUIRED:
        raise api_error(
            403,
            decision.message,
            decision.code,
            details="Tus padres deben aprobar tu cuenta antes de que puedas guardar información",
            action=decision.action,
        )


async def require_consent(request: Request, db: Session = Depends(get_db)) -> None:
    """
    全局依赖：写请求执行前检查执行用户的家长同意状态

    用户ID来源：请求体的 user_id / userId，其次是路径参数 user_id
    """
    if not is_mutating_method(request.method):
        return

    payload = await _read_payload(request)
    user_id = _to_user_id(payload.get("user_id"))
    if user_id is None:
        user_id = _to_user_id(payload.get("userId"))
    if user_id is None:
        user_id = _to_user_id(request.path_params.get("user_id"))

    try:
        decision = await run_in_threadpool(check_consent, db, user_id, True, request.url.path)
    except ServerError:
        raise api_error(500, "Error al verificar el consentimiento", "CONSENT_CHECK_ERROR")
    enforce_consent(decision)


# ==================== FastAPI 初始化 ====================
app = FastAPI(title="Semillita", dependencies=[Depends(require_consent)])
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ==================== 定时任务 ====================
scheduler: Optional[BackgroundScheduler] = None


def run_media_cleanup():
    try:
        logging.info("🕛 开始执行：清理未被引用的媒体文件")
        db: Session = SessionLocal()
        try:
            cleanup_unreferenced_media(db)
        finally:
            db.close()
    except Exception as e:
        logging.error(f"❌ 媒体清理任务异常：{e}")


def start_media_cleanup_scheduler():
    """启动媒体清理定时任务"""
    global scheduler
    try:
        scheduler = BackgroundScheduler()
        scheduler.add_job(
            func=run_media_cleanup,
            trigger=CronTrigger(hour=3, minute=0),
            id="media_cleanup_job",
            name="每日清理未引用媒体文件",
            replace_existing=True,
        )
        scheduler.start()
        logging.info("✅ 媒体清理任务已启动：每天03:00执行")
    except Exception as e:
        logging.error(f"❌ 启动媒体清理任务失败：{e}")


@app.on_event("startup")
def on_startup():
    init_db()
    db: Session = SessionLocal()
    try:
        ensure_default_data(db)
    finally:
        db.close()

    if os.getenv("MEDIA_CLEANUP_ENABLED", "true").lower() == "true":
        start_media_cleanup_scheduler()


@app.on_event("shutdown")
def on_shutdown():
    if scheduler is not None and scheduler.running:
        scheduler.shutdown()
        logging.info("✅ 定时任务调度器已关闭")


# ==================== 认证 ====================
def create_access_token(user_id: int) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=JWT_EXPIRE_MINUTES)
    return jwt.encode({"sub": str(user_id), "exp": expire}, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


def get_current_user(token: str = Header(...)) -> int:
    try:
        payload = jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
        return int(payload["sub"])
    except (JWTError, KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Token inválido o expirado")


def get_current_facilitator(user_id: int = Depends(get_current_user), db: Session = Depends(get_db)) -> User:
    user = get_user(db, user_id)
    if not user:
        raise HTTPException(status_code=401, detail="Token inválido o expirado")
    if user.role not in FACILITATOR_ROLES:
        raise api_error(403, "Solo los facilitadores pueden acceder", "FACILITATOR_REQUIRED")
    return user


def require_user(db: Session, user_id: int) -> User:
    user = get_user(db, user_id)
    if not user:
        raise api_error(404, "Usuario no encontrado", "USER_NOT_FOUND")
    return user


def save_upload(upload: Optional[UploadFile], user_id: int) -> Optional[str]:
    """保存上传文件，返回URL；未上传时返回 None"""
    if upload is None or not upload.filename:
        return None
    result = media_service.save_file(upload.file.read(), upload.content_type, user_id, upload.filename)
    if not result["success"]:
        raise api_error(400, f"Archivo no válido: {result['error']}", "INVALID_MEDIA")
    return result["url"]


# ==================== 健康检查 ====================
@app.get("/")
def read_root():
    return {"message": "Semillita API funcionando"}


# ==================== 用户 ====================
@app.post("/api/users")
def register_user(request: CreateUserRequest, db: Session = Depends(get_db)) -> Dict[str, Any]:
    try:
        logging.info(f"👤 注册: role={request.role}, age={request.age}, context={request.context}")
        if get_user_by_alias(db, request.alias.strip()):
            raise api_error(409, "Este nombre ya está en uso", "ALIAS_TAKEN")
        try:
            user = create_user(db, request)
        except IntegrityError:
            db.rollback()
            raise api_error(409, "Este nombre ya está en uso", "ALIAS_TAKEN")
        return user.to_dict()
    except HTTPException:
        raise
    except Exception as e:
        logging.error(f"❌ 注册失败: {e}")
        raise api_error(500, "Error al crear el usuario", "INTERNAL_ERROR")


@app.get("/api/users")
def find_users(alias: str, db: Session = Depends(get_db)) -> List[Dict[str, Any]]:
    user = get_user_by_alias(db, alias)
    return [user.to_dict()] if user else []


@app.post("/api/auth/login")
def login(request: LoginRequest, db: Session = Depends(get_db)) -> Dict[str, Any]:
    try:
        user = get_user_by_alias(db, request.alias.strip())
        if not user:
            raise api_error(404, "Usuario no encontrado", "USER_NOT_FOUND")
        logging.info(f"✅ 登录成功: user_id={user.id}, role={user.role}")
        return {"status": "success", "jwt": create_access_token(user.id), "user": user.to_dict()}
    except HTTPException:
        raise
    except Exception as e:
        logging.error(f"❌ 登录异常: {e}")
        raise api_error(500, "Error al iniciar sesión", "INTERNAL_ERROR")


@app.get("/api/users/{user_id}")
def get_user_profile(user_id: int, db: Session = Depends(get_db)) -> Dict[str, Any]:
    return require_user(db, user_id).to_dict()


@app.delete("/api/users/{user_id}", response_model=DeleteAccountResponse)
def delete_account(user_id: int, request: DeleteAccountRequest, db: Session = Depends(get_db)):
    """
    删除账户及其全部数据（日记、植物、成就、兑换记录、通知、种子、媒体文件）
    """
    try:
        if not request.confirm_deletion:
            raise api_error(400, "Debes confirmar la eliminación de la cuenta", "CONFIRMATION_REQUIRED")
        require_user(db, user_id)
        logging.info(f"🗑️ 开始删除账户: user_id={user_id}")
        deleted = delete_user_account(db, user_id)
        return DeleteAccountResponse(success=True, message="Cuenta eliminada correctamente", deleted_data=deleted)
    except HTTPException:
        raise
    except Exception as e:
        logging.error(f"❌ 删除账户失败: user_id={user_id}, error={e}")
        raise api_error(500, "Error al eliminar la cuenta", "INTERNAL_ERROR")


# ==================== 家长同意 ====================
@app.post("/api/verify-consent")
def verify_consent(request: VerifyConsentRequest, db: Session = Depends(get_db)) -> Dict[str, Any]:
    try:
        user = require_user(db, request.user_id)
        if not user.is_child:
            raise api_error(400, "Solo las cuentas de niños requieren consentimiento", "NOT_A_CHILD")
        if request.verification_code != CONSENT_VERIFICATION_CODE:
            logging.warning(f"🚫 同意验证码错误: user_id={request.user_id}")
            raise api_error(400, "Código de verificación inválido", "INVALID_VERIFICATION_CODE")
        user = update_user_consent(db, request.user_id, True)
        logging.info(f"✅ 家长同意已验证: user_id={user.id}")
        return {"success": True, "message": "Consentimiento verificado", "user": user.to_dict()}
    except HTTPException:
        raise
    except Exception as e:
        logging.error(f"❌ 同意验证失败: {e}")
        raise api_error(500, "Error al verificar el consentimiento", "INTERNAL_ERROR")


@app.post("/api/resend-consent-email")
def resend_consent_email(request: ResendConsentEmailRequest, db: Session = Depends(get_db)) -> Dict[str, Any]:
    user = require_user(db, request.user_id)
    # 不发送真实邮件，只记录请求
    logging.info(f"📧 重发家长同意邮件: user_id={user.id}, has_parent_email={bool(user.parent_email)}")
    return {"success": True, "message": "Hemos enviado de nuevo el correo a tus padres"}


# ==================== 仪表盘 ====================
@app.get("/api/dashboard/{user_id}")
def get_dashboard(user_id: int, db: Session = Depends(get_db)) -> Dict[str, Any]:
    try:
        user = require_user(db, user_id)
        now = utc_now()
        plant = get_active_plant(db, user_id)
        latest = (
            db.query(JournalEntry)
            .filter(JournalEntry.user_id == user_id)
            .order_by(JournalEntry.created_at.desc(), JournalEntry.id.desc())
            .first()
        )
        seeds = db.query(Seed).filter(Seed.user_id == user_id).order_by(Seed.created_at.desc()).all()
        plant_data = None
        if plant:
            plant_data = plant.to_dict(now)
            plant_data["days_caring"] = plant.days_caring(now)
        return {
            "user": user.to_dict(),
            "journal_entries_count": get_journal_entries_count(db, user_id),
            "plant": plant_data,
            "latest_entry": latest.to_dict() if latest else None,
            "achievements": achievements_with_status(db, user_id),
            "seeds": [s.to_dict() for s in seeds],
        }
    except HTTPException:
        raise
    except Exception as e:
        logging.error(f"❌ 获取仪表盘失败: user_id={user_id}, error={e}")
        raise api_error(500, "Error al cargar el panel", "INTERNAL_ERROR")


# ==================== 植物 ====================
@app.get("/api/users/{user_id}/plant")
def get_user_plant(user_id: int, db: Session = Depends(get_db)) -> Optional[Dict[str, Any]]:
    plant = get_active_plant(db, user_id)
    return plant.to_dict() if plant else None


@app.post("/api/plants")
def create_plant(request: CreatePlantRequest, db: Session = Depends(get_db)) -> Dict[str, Any]:
    try:
        require_user(db, request.user_id)
        plant = Plant(
            user_id=request.user_id,
            name=request.name,
            type=request.type,
            status=request.status,
            is_active=True,
        )
        db.add(plant)
        db.commit()
        db.refresh(plant)
        logging.info(f"🌱 创建植物: user_id={request.user_id}, plant_id={plant.id}")

        awarded = evaluate_and_award_achievements(db, request.user_id)
        return {"plant": plant.to_dict(), "new_achievements": [a.to_dict() for a in awarded]}
    except HTTPException:
        raise
    except Exception as e:
        logging.error(f"❌ 创建植物失败: {e}")
        raise api_error(500, "Error al crear la planta", "INTERNAL_ERROR")


@app.patch("/api/plants/{plant_id}/photo")
def update_plant_photo(
    plant_id: int,
    request: Request,
    photo: UploadFile = File(...),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    try:
        plant = db.query(Plant).filter(Plant.id == plant_id).first()
        if not plant:
            raise api_error(404, "Planta no encontrada", "PLANT_NOT_FOUND")
        # 路径里是植物ID，按植物主人检查同意
        try:
            enforce_consent(check_consent(db, plant.user_id, True, request.url.path))
        except ServerError:
            raise api_error(500, "Error al verificar el consentimiento", "CONSENT_CHECK_ERROR")

        url = save_upload(photo, plant.user_id)
        if not plant.first_photo_url:
            plant.first_photo_url = url
        plant.latest_photo_url = url
        db.commit()
        db.refresh(plant)
        return plant.to_dict()
    except HTTPException:
        raise
    except Exception as e:
        logging.error(f"❌ 更新植物照片失败: plant_id={plant_id}, error={e}")
        raise api_error(500, "Error al actualizar la foto", "INTERNAL_ERROR")


@app.patch("/api/plants/{plant_id}/status")
def update_plant_status(plant_id: int, request: UpdatePlantStatusRequest,
                        db: Session = Depends(get_db)) -> Dict[str, Any]:
    try:
        plant = db.query(Plant).filter(Plant.id == plant_id, Plant.user_id == request.user_id).first()
        if not plant:
            raise api_error(404, "Planta no encontrada", "PLANT_NOT_FOUND")
        plant.status = request.status
        db.commit()
        db.refresh(plant)
        return plant.to_dict()
    except HTTPException:
        raise
    except Exception as e:
        logging.error(f"❌ 更新植物状态失败: plant_id={plant_id}, error={e}")
        raise api_error(500, "Error al actualizar la planta", "INTERNAL_ERROR")


# ==================== 情绪 ====================
@app.get("/api/emotions")
def list_emotions(db: Session = Depends(get_db)) -> List[Dict[str, Any]]:
    return [e.to_dict() for e in db.query(Emotion).order_by(Emotion.id).all()]


# ==================== 日记 ====================
@app.post("/api/journal-entries")
def create_journal_entry(
    user_id: int = Form(...),
    emotion_id: Optional[int] = Form(None),
    plant_id: Optional[int] = Form(None),
    text_entry: Optional[str] = Form(None),
    photo: Optional[UploadFile] = File(None),
    audio: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    """
    创建日记
    流程：保存媒体 → 写入日记并奖励积分 → 更新植物照片 → 评估成就
    """
    try:
        require_user(db, user_id)
        if emotion_id is not None and not db.query(Emotion).filter(Emotion.id == emotion_id).first():
            raise api_error(400, "Emoción no válida", "EMOTION_NOT_FOUND")

        plant = None
        if plant_id is not None:
            plant = db.query(Plant).filter(Plant.id == plant_id, Plant.user_id == user_id).first()
        if plant is None:
            plant = get_active_plant(db, user_id)

        photo_url = save_upload(photo, user_id)
        audio_url = save_upload(audio, user_id)
        if emotion_id is None and not (text_entry or "").strip() and not photo_url and not audio_url:
            raise api_error(400, "La entrada está vacía", "EMPTY_ENTRY")

        entry = JournalEntry(
            user_id=user_id,
            plant_id=plant.id if plant else None,
            emotion_id=emotion_id,
            text_entry=text_entry,
            photo_url=photo_url,
            audio_url=audio_url,
            points_earned=JOURNAL_ENTRY_POINTS,
        )
        db.add(entry)
        credit_points(db, user_id, JOURNAL_ENTRY_POINTS)
        if plant and photo_url:
            if not plant.first_photo_url:
                plant.first_photo_url = photo_url
            plant.latest_photo_url = photo_url
        db.commit()
        db.refresh(entry)
        logging.info(f"📝 日记创建成功: user_id={user_id}, entry_id={entry.id}, points=+{JOURNAL_ENTRY_POINTS}")

        awarded = evaluate_and_award_achievements(db, user_id)
        user = require_user(db, user_id)
        return {
            "entry": entry.to_dict(),
            "new_achievements": [a.to_dict() for a in awarded],
            "points": user.points,
        }
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logging.error(f"❌ 创建日记失败: user_id={user_id}, error={e}")
        raise api_error(500, "Error al guardar la entrada", "INTERNAL_ERROR")


@app.get("/api/users/{user_id}/journal-entries")
def list_journal_entries(user_id: int, limit: int = 50, db: Session = Depends(get_db)) -> List[Dict[str, Any]]:
    entries = (
        db.query(JournalEntry)
        .filter(JournalEntry.user_id == user_id)
        .order_by(JournalEntry.created_at.desc(), JournalEntry.id.desc())
        .limit(max(1, min(limit, 200)))
        .all()
    )
    return [entry.to_dict() for entry in entries]


@app.get("/api/users/{user_id}/journal-entries/latest")
def get_latest_journal_entry(user_id: int, db: Session = Depends(get_db)) -> Optional[Dict[str, Any]]:
    entry = (
        db.query(JournalEntry)
        .filter(JournalEntry.user_id == user_id)
        .order_by(JournalEntry.created_at.desc(), JournalEntry.id.desc())
        .first()
    )
    return entry.to_dict() if entry else None


@app.delete("/api/journal-entries/{entry_id}")
def delete_journal_entry(entry_id: int, user_id: int, db: Session = Depends(get_db)) -> Dict[str, Any]:
    """
    删除日记（只能删除自己的），同时删除关联的媒体文件
    已获得的积分不收回
    """
    try:
        entry = db.query(JournalEntry).filter(
            JournalEntry.id == entry_id,
            JournalEntry.user_id == user_id,
        ).first()
        if not entry:
            raise api_error(404, "Entrada no encontrada", "ENTRY_NOT_FOUND")

        media_urls = [entry.photo_url, entry.audio_url]
        db.delete(entry)
        db.commit()
        for url in media_urls:
            media_service.delete_by_url(url)
        return {"success": True, "message": "Entrada eliminada"}
    except HTTPException:
        raise
    except Exception as e:
        logging.error(f"❌ 删除日记失败: entry_id={entry_id}, error={e}")
        raise api_error(500, "Error al eliminar la entrada", "INTERNAL_ERROR")


# ==================== 种子库 ====================
@app.post("/api/seeds")
def create_seed(
    user_id: int = Form(...),
    type: str = Form(...),
    origin: Optional[str] = Form(None),
    notes: Optional[str] = Form(None),
    is_shared: bool = Form(False),
    photo: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    try:
        require_user(db, user_id)
        seed = Seed(
            user_id=user_id,
            type=type,
            origin=origin,
            notes=notes,
            is_shared=is_shared,
            photo_url=save_upload(photo, user_id),
            share_code=secrets.token_hex(6).upper(),
        )
        db.add(seed)
        db.commit()
        db.refresh(seed)
        logging.info(f"🌰 种子已保存: user_id={user_id}, seed_id={seed.id}")
        return seed.to_dict()
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logging.error(f"❌ 保存种子失败: user_id={user_id}, error={e}")
        raise api_error(500, "Error al guardar la semilla", "INTERNAL_ERROR")


@app.get("/api/users/{user_id}/seeds")
def list_seeds(user_id: int, db: Session = Depends(get_db)) -> List[Dict[str, Any]]:
    seeds = db.query(Seed).filter(Seed.user_id == user_id).order_by(Seed.created_at.desc(), Seed.id.desc()).all()
    return [s.to_dict() for s in seeds]


@app.get("/api/seeds/share/{share_code}")
def get_shared_seed(share_code: str, db: Session = Depends(get_db)) -> Dict[str, Any]:
    seed = db.query(Seed).filter(Seed.share_code == share_code.upper()).first()
    if not seed:
        raise api_error(404, "Semilla no encontrada", "SEED_NOT_FOUND")
    return seed.to_dict()


# ==================== 成就 ====================
@app.get("/api/achievements")
def list_achievements(db: Session = Depends(get_db)) -> List[Dict[str, Any]]:
    achievements = db.query(Achievement).filter(Achievement.is_active == True).order_by(Achievement.id).all()  # noqa: E712
    return [a.to_dict() for a in achievements]


@app.get("/api/users/{user_id}/achievements")
def list_user_achievements(user_id: int, db: Session = Depends(get_db)) -> List[Dict[str, Any]]:
    rows = (
        db.query(UserAchievement)
        .filter(UserAchievement.user_id == user_id)
        .order_by(UserAchievement.earned_at.desc())
        .all()
    )
    result = []
    for ua in rows:
        data = ua.to_dict()
        data["achievement"] = ua.achievement.to_dict() if ua.achievement else None
        result.append(data)
    return result


# ==================== 通知 ====================
@app.post("/api/notifications")
def create_notification(request: CreateNotificationRequest, db: Session = Depends(get_db)) -> Dict[str, Any]:
    try:
        require_user(db, request.user_id)
        notification = Notification(
            user_id=request.user_id,
            title=request.title,
            message=request.message,
            type=request.type,
        )
        db.add(notification)
        db.commit()
        db.refresh(notification)
        return notification.to_dict()
    except HTTPException:
        raise
    except Exception as e:
        logging.error(f"❌ 创建通知失败: {e}")
        raise api_error(500, "Error al crear la notificación", "INTERNAL_ERROR")


@app.get("/api/users/{user_id}/notifications")
def list_notifications(user_id: int, db: Session = Depends(get_db)) -> List[Dict[str, Any]]:
    rows = (
        db.query(Notification)
        .filter(Notification.user_id == user_id)
        .order_by(Notification.sent_at.desc(), Notification.id.desc())
        .all()
    )
    return [n.to_dict() for n in rows]


# ==================== 奖励 ====================
PURCHASE_ERRORS = {
    PurchaseError.REWARD_NOT_FOUND: (404, "Recompensa no encontrada"),
    PurchaseError.USER_NOT_FOUND: (404, "Usuario no encontrado"),
    PurchaseError.INSUFFICIENT_POINTS: (400, "No tienes suficientes puntos"),
    PurchaseError.ALREADY_PURCHASED: (400, "Ya tienes esta recompensa"),
}


@app.get("/api/rewards")
def list_rewards(db: Session = Depends(get_db)) -> List[Dict[str, Any]]:
    rewards = (
        db.query(Reward)
        .filter(Reward.is_active == True)  # noqa: E712
        .order_by(Reward.points_cost, Reward.id)
        .all()
    )
    return [r.to_dict() for r in rewards]


@app.post("/api/rewards/{reward_id}/purchase")
def purchase(reward_id: int, request: PurchaseRewardRequest, db: Session = Depends(get_db)) -> Dict[str, Any]:
    try:
        result = purchase_reward(db, request.user_id, reward_id)
        if not result.ok:
            status_code, message = PURCHASE_ERRORS[result.error]
            extra = {"points_needed": result.points_needed} if result.error == PurchaseError.INSUFFICIENT_POINTS else {}
            raise api_error(status_code, message, result.error.value, **extra)
        return {
            "success": True,
            "message": "¡Recompensa canjeada!",
            "user_reward": result.user_reward.to_dict(include_reward=True),
            "remaining_points": result.user.points,
        }
    except HTTPException:
        raise
    except Exception as e:
        logging.error(f"❌ 兑换奖励失败: user_id={request.user_id}, reward_id={reward_id}, error={e}")
        raise api_error(500, "Error al canjear la recompensa", "INTERNAL_ERROR")


@app.get("/api/users/{user_id}/rewards")
def list_user_rewards(user_id: int, db: Session = Depends(get_db)) -> List[Dict[str, Any]]:
    rows = (
        db.query(UserReward)
        .filter(UserReward.user_id == user_id)
        .order_by(UserReward.purchased_at.desc(), UserReward.id.desc())
        .all()
    )
    return [ur.to_dict(include_reward=True) for ur in rows]


# ==================== 主持人面板 ====================
def _latest_entry(db: Session, user_id: int) -> Optional[JournalEntry]:
    return (
        db.query(JournalEntry)
        .filter(JournalEntry.user_id == user_id)
        .order_by(JournalEntry.created_at.desc(), JournalEntry.id.desc())
        .first()
    )


@app.get("/api/facilitator/dashboard")
def facilitator_dashboard(facilitator: User = Depends(get_current_facilitator),
                          db: Session = Depends(get_db)) -> Dict[str, Any]:
    try:
        children = get_all_children(db, limit=100)
        counts = count_journal_entries_by_user(db, [c.id for c in children])
        roster = []
        for child in children:
            latest = _latest_entry(db, child.id)
            roster.append({
                "id": child.id,
                "alias": child.alias,
                "avatar": child.avatar,
                "age": child.age,
                "context": child.context,
                "points": child.points or 0,
                "consent_verified": bool(child.consent_verified),
                "journal_entries_count": counts.get(child.id, 0),
                "latest_emotion": latest.emotion.to_dict() if latest and latest.emotion else None,
                "last_entry_at": latest.created_at.isoformat() if latest and latest.created_at else None,
            })
        logging.info(f"📋 主持人查看名单: facilitator_id={facilitator.id}, children={len(roster)}")
        return {"children": roster, "total": len(roster)}
    except HTTPException:
        raise
    except Exception as e:
        logging.error(f"❌ 获取主持人面板失败: {e}")
        raise api_error(500, "Error al cargar el panel", "INTERNAL_ERROR")


@app.get("/api/facilitator/child/{child_id}")
def facilitator_child_detail(child_id: int, facilitator: User = Depends(get_current_facilitator),
                             db: Session = Depends(get_db)) -> Dict[str, Any]:
    child = get_user(db, child_id)
    if not child or not child.is_child:
        raise api_error(404, "Niño no encontrado", "CHILD_NOT_FOUND")
    entries = (
        db.query(JournalEntry)
        .filter(JournalEntry.user_id == child_id)
        .order_by(JournalEntry.created_at.desc(), JournalEntry.id.desc())
        .limit(50)
        .all()
    )
    user_rewards = (
        db.query(UserReward)
        .filter(UserReward.user_id == child_id)
        .order_by(UserReward.purchased_at.desc(), UserReward.id.desc())
        .all()
    )
    plant = get_active_plant(db, child_id)
    return {
        "child": child.to_dict(),
        "plant": plant.to_dict() if plant else None,
        "journal_entries": [e.to_dict() for e in entries],
        "journal_entries_count": get_journal_entries_count(db, child_id),
        "achievements": achievements_with_status(db, child_id),
        "user_rewards": [ur.to_dict(include_reward=True) for ur in user_rewards],
    }


# ==================== 媒体文件 ====================
@app.get("/uploads/{user_dir}/{filename}")
def get_media(user_dir: str, filename: str):
    file_path = media_service.resolve_path(user_dir, filename)
    if not file_path:
        raise HTTPException(status_code=404, detail="Archivo no encontrado")
    mime_type, _ = mimetypes.guess_type(file_path)
    return FileResponse(path=file_path, media_type=mime_type or "application/octet-stream", filename=filename)
