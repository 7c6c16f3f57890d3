"""
Streamlit Frontend for Kasbon

One page: the debt form on top, the password confirmation below it,
then the outstanding total and the list of debts.

DESIGN PRINCIPLES:
1. Simple, clear interface
2. Explicit confirmation (password) before every change
3. Clear error messages in simple language
4. Visual feedback for all operations
5. The list always shows what the database holds

The UI never writes directly:
- The form is validated first
- The action waits for the password
- The list refreshes from the store's change push
"""

import asyncio
import streamlit as st

from kasbon.audit import configure_logging
from kasbon.config import get_settings, validate_all_settings
from kasbon.gate import ActionInProgressError, NoPendingActionError, WrongSecretError
from kasbon.models.debt import DebtEntry, DebtForm, DebtStatus, PendingActionKind, PhotoUpload
from kasbon.orchestrator import DebtBook, DebtCollection, create_app_components
from kasbon.presentation import (
    decode_data_uri,
    format_date_long,
    format_rupiah,
    status_badge_html,
)
from kasbon.services.storage import NotFoundError, StoreError
from kasbon.validation import ValidationError


settings = get_settings().app
configure_logging(settings.log_level)

# Page configuration
st.set_page_config(
    page_title=settings.app_title,
    page_icon="📝",
    layout="wide",
)

# Custom CSS for better UX
st.markdown("""
<style>
    .total-box {
        padding: 20px;
        background-color: #fee2e2;
        border-radius: 10px;
        border-left: 5px solid #dc2626;
        margin: 10px 0;
    }
    .confirm-box {
        padding: 16px 20px;
        background-color: #fff3cd;
        border-radius: 10px;
        border-left: 5px solid #ffc107;
        margin: 10px 0;
    }
    .big-number {
        font-size: 2.2em;
        font-weight: bold;
        color: #991b1b;
    }
</style>
""", unsafe_allow_html=True)


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_collection() -> DebtCollection:
    """Create the shared collection and its single store subscription (cached)."""
    collection, _ = create_app_components(use_storage=True, settings=settings)
    run_async(collection.open())
    return collection


def get_debt_book() -> DebtBook:
    """This session's debt book; its password gate is not shared."""
    if "debt_book" not in st.session_state:
        st.session_state.debt_book = DebtBook(collection=get_collection(), settings=settings)
    return st.session_state.debt_book


def init_session_state():
    defaults = {
        "editing_id": None,
        "form_version": 0,
        "field_errors": {},
        "photo_notices": [],
    }
    for key, value in defaults.items():
        if key not in st.session_state:
            st.session_state[key] = value


def reset_form():
    """Clear the form by giving its widgets fresh keys."""
    st.session_state.editing_id = None
    st.session_state.field_errors = {}
    st.session_state.photo_notices = []
    st.session_state.form_version += 1


def show_photo(data_uri: str, width: int):
    try:
        _, content = decode_data_uri(data_uri)
    except ValueError:
        st.caption("Foto rusak")
        return
    st.image(content, width=width)


def main():
    """Main application entry point."""
    init_session_state()

    try:
        debt_book = get_debt_book()
    except StoreError as e:
        st.error(f"Error memuat data: {e}")
        st.stop()

    st.title(f"📝 {settings.app_title}")
    st.caption("Masukkan detail hutang di bawah ini. Data akan disimpan online.")

    render_sidebar(debt_book)
    render_form(debt_book)
    render_confirmation(debt_book)
    render_total(debt_book)
    render_list(debt_book)


def render_sidebar(debt_book: DebtBook):
    st.sidebar.title("📝 Kasbon")
    st.sidebar.markdown("---")
    status = validate_all_settings()
    if debt_book.store_name == "firebase":
        st.sidebar.success("✅ Tersambung ke Firebase")
    else:
        st.sidebar.warning("⚠️ Firebase belum tersambung. Data hanya disimpan sementara.")
        if not status.get("firebase", False):
            st.sidebar.caption(f"Firebase: {status.get('firebase_error', 'Belum dikonfigurasi')}")
    if not status.get("app", False):
        st.sidebar.error(f"❌ Pengaturan aplikasi: {status.get('app_error')}")
    if settings.uses_default_password:
        st.sidebar.warning(
            "⚠️ Password aksi masih default. Password ini hanya penghalang ringan, "
            "bukan pengaman data. Ganti lewat ACTION_PASSWORD."
        )
    if st.sidebar.button("🔄 Muat ulang daftar"):
        st.rerun()
    st.sidebar.markdown(
        """
        **Cara pakai:**
        1. Isi nama, tanggal dan nominal
        2. Status **Lunas** dibaca sebagai pembayaran
        3. Status lain menambah hutang yang masih berjalan
        4. Konfirmasi dengan password
        """
    )


def render_form(debt_book: DebtBook):
    """Render the add / edit form."""
    editing_id = st.session_state.editing_id
    editing = debt_book.get_entry(editing_id) if editing_id else None
    if editing_id and editing is None:
        # The entry was deleted elsewhere while we were editing it
        reset_form()
        editing_id = None

    version = st.session_state.form_version
    errors = st.session_state.field_errors
    today = settings.today()
    statuses = list(DebtStatus)

    st.subheader("✏️ Edit Hutang" if editing else "➕ Tambah Hutang")

    for notice in st.session_state.photo_notices:
        st.warning(f"📷 {notice}")

    with st.form(f"debt_form_{version}"):
        col1, col2 = st.columns(2)

        with col1:
            name = st.text_input(
                "Nama *",
                value=editing.name if editing else "",
                placeholder="Contoh: Budi Santoso",
            )
            if "name" in errors:
                st.error(errors["name"])

            amount = st.text_input(
                "Nominal (Rp) *",
                value=str(editing.amount) if editing else "",
                placeholder="Contoh: 50000",
            )
            if "amount" in errors:
                st.error(errors["amount"])

        with col2:
            debt_date = st.date_input(
                "Tanggal *",
                value=editing.debt_date if editing else today,
                min_value=settings.earliest_entry_date,
                max_value=today,
                format="DD/MM/YYYY",
            )
            if "debt_date" in errors:
                st.error(errors["debt_date"])

            status = st.selectbox(
                "Status *",
                options=statuses,
                index=statuses.index(editing.status) if editing else 0,
                format_func=lambda s: s.value,
            )

        description = st.text_area(
            "Deskripsi (Opsional)",
            value=editing.description if editing else "",
            placeholder="Contoh: Pinjam buat makan siang, Beli jajan sore",
        )

        keep_photos = None
        if editing and editing.photos:
            st.markdown("**Foto tersimpan** (hapus centang untuk membuang)")
            keep_photos = []
            photo_cols = st.columns(min(len(editing.photos), 4))
            for idx, photo in enumerate(editing.photos):
                with photo_cols[idx % len(photo_cols)]:
                    show_photo(photo, width=120)
                    if st.checkbox("Simpan", value=True, key=f"keep_{version}_{idx}"):
                        keep_photos.append(photo)

        uploads = st.file_uploader(
            f"Foto (Opsional, Max {settings.max_photo_size_mb}MB per file)",
            type=["png", "jpg", "jpeg", "gif", "webp"],
            accept_multiple_files=True,
        )

        submitted = st.form_submit_button(
            "💾 Simpan Perubahan" if editing else "➕ Tambah Hutang",
            type="primary",
            disabled=debt_book.gate.is_busy,
        )

    if editing and st.button("Batal Edit"):
        reset_form()
        st.rerun()

    if not submitted:
        return

    form = DebtForm(
        name=name,
        debt_date=debt_date,
        amount=amount,
        status=status,
        description=description,
    )
    photos = [
        PhotoUpload(filename=f.name, mime_type=f.type, content=f.getvalue())
        for f in uploads or []
    ]

    try:
        if editing:
            batch = run_async(debt_book.stage_edit(editing.id, form, photos, keep_photos))
        else:
            batch = run_async(debt_book.stage_add(form, photos))
    except ValidationError as e:
        st.session_state.field_errors = e.messages()
        st.rerun()
    except NotFoundError:
        st.error("Data hutang ini sudah tidak ada.")
        reset_form()
        return
    except ActionInProgressError:
        st.warning("Perubahan lain masih disimpan. Tunggu sebentar.")
        return

    st.session_state.field_errors = {}
    st.session_state.photo_notices = [str(rejected) for rejected in batch.rejected]
    st.rerun()


def describe_pending(debt_book: DebtBook) -> str:
    pending = debt_book.gate.pending
    if pending.kind is PendingActionKind.DELETE:
        entry = debt_book.get_entry(pending.entry_id)
        return f"Hapus hutang **{entry.name if entry else pending.entry_id}**"
    draft = pending.draft
    verb = "Simpan perubahan" if pending.kind is PendingActionKind.EDIT else "Tambah"
    return f"{verb}: **{draft.name}**, {format_rupiah(draft.amount)}, {draft.status.value}"


def render_confirmation(debt_book: DebtBook):
    """Password prompt for the pending action."""
    if debt_book.gate.pending is None:
        return

    st.markdown(f"""
    <div class="confirm-box">
        <h4>🔒 Konfirmasi Aksi</h4>
        <p>Untuk melanjutkan, masukkan password.</p>
    </div>
    """, unsafe_allow_html=True)
    st.markdown(describe_pending(debt_book))

    busy = debt_book.gate.is_busy
    password = st.text_input(
        "Password",
        type="password",
        placeholder="Masukkan password...",
        key=f"password_{st.session_state.form_version}",
        disabled=busy,
    )

    col1, col2, _ = st.columns([1, 1, 3])
    with col1:
        confirm_clicked = st.button("✅ Konfirmasi", type="primary", disabled=busy)
    with col2:
        cancel_clicked = st.button("Batal", disabled=busy)

    if cancel_clicked:
        run_async(debt_book.cancel())
        st.rerun()

    if not confirm_clicked:
        return

    with st.spinner("Mengkonfirmasi..."):
        try:
            outcome = run_async(debt_book.confirm(password))
        except WrongSecretError:
            st.error("Password salah. Silakan coba lagi.")
            return
        except NoPendingActionError:
            st.rerun()
        except StoreError as e:
            st.error(f"Gagal menyimpan perubahan: {e}")
            return

    st.toast(outcome.message, icon="✅")
    reset_form()
    st.rerun()


def render_total(debt_book: DebtBook):
    st.markdown(f"""
    <div class="total-box">
        <p>Total hutang yang belum lunas</p>
        <div class="big-number">{format_rupiah(debt_book.outstanding_total)}</div>
    </div>
    """, unsafe_allow_html=True)


def render_entry(debt_book: DebtBook, entry: DebtEntry):
    cols = st.columns([1.2, 2, 2, 3, 2, 1.6, 1.4])

    with cols[0]:
        if entry.photos:
            show_photo(entry.photos[0], width=64)
            with st.popover(f"🖼️ {len(entry.photos)}"):
                for photo in entry.photos:
                    show_photo(photo, width=360)
        else:
            st.caption("-")

    cols[1].markdown(f"**{entry.name}**")
    cols[2].write(format_date_long(entry.debt_date))
    cols[3].write(entry.description or "-")
    cols[4].markdown(f"**{format_rupiah(entry.amount)}**")
    cols[5].markdown(status_badge_html(entry.status), unsafe_allow_html=True)

    busy = debt_book.gate.is_busy
    with cols[6]:
        if st.button("✏️", key=f"edit_{entry.id}", help="Edit", disabled=busy):
            reset_form()
            st.session_state.editing_id = entry.id
            st.rerun()
        if st.button("🗑️", key=f"delete_{entry.id}", help="Hapus", disabled=busy):
            try:
                debt_book.stage_delete(entry.id)
            except ActionInProgressError:
                st.warning("Perubahan lain masih disimpan. Tunggu sebentar.")
                return
            st.rerun()


def render_list(debt_book: DebtBook):
    """Render the list of debts."""
    st.subheader("📋 Daftar Hutang")

    if not debt_book.is_loaded:
        st.info("Memuat data...")
        return

    entries = debt_book.entries
    if not entries:
        st.info("Belum ada data hutang. Silakan tambahkan hutang baru di atas.")
        return

    header = st.columns([1.2, 2, 2, 3, 2, 1.6, 1.4])
    for col, label in zip(header, ["Foto", "Nama", "Tanggal", "Deskripsi", "Nominal", "Status", "Aksi"]):
        col.markdown(f"**{label}**")
    st.markdown("---")

    for entry in entries:
        render_entry(debt_book, entry)


if __name__ == "__main__":
    main()
